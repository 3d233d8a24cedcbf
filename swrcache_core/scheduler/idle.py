"""SWRCache Idle Scheduler - Deferred Execution When the Loop Is Idle.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class IdleDeadline:
    """Deadline handed to an idle callback.

    Attributes:
        did_timeout: True when the callback runs because its timeout passed
            (or a fixed-delay fallback fired) rather than because the loop
            was idle
    """

    def __init__(self, did_timeout: bool, budget: float = 0.0):
        self.did_timeout = did_timeout
        self._expires_at = time.monotonic() + budget

    def time_remaining(self) -> float:
        """Seconds left in the idle period (0 once it is used up)."""
        return max(0.0, self._expires_at - time.monotonic())

    def __repr__(self) -> str:
        return f"IdleDeadline(did_timeout={self.did_timeout}, remaining={self.time_remaining():.3f}s)"


IdleCallback = Callable[[IdleDeadline], Any]


@dataclass
class SchedulerConfig:
    """Idle scheduler configuration.

    Attributes:
        native_idle: Use loop idle detection instead of the fixed-delay timer
        fallback_delay: Delay in seconds used by the timer fallback
        idle_budget: Seconds reported by time_remaining() at idle invocation
        poll_interval: Seconds between loop lag samples
        lag_threshold: Lag in seconds under which the loop counts as idle
        default_timeout: Timeout used when schedule() is given none
    """

    native_idle: bool = True
    fallback_delay: float = 0.2
    idle_budget: float = 0.05
    poll_interval: float = 0.01
    lag_threshold: float = 0.005
    default_timeout: float = 2.0


class ScheduledCall:
    """Handle for a callback handed to an IdleScheduler.

    A call is active from scheduling until its callback (and any awaitable
    it returned) completes. It stops being active without completing when
    it is cancelled or when the event loop it was bound to closes first,
    e.g. when ``asyncio.run`` returns.

    Attributes:
        started: The callback has been invoked
        finished: The callback (and its awaitable) completed
        cancelled: The call was cancelled before completing
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop
        self.started = False
        self.finished = False
        self.cancelled = False
        self._handle: Optional[Any] = None

    @property
    def active(self) -> bool:
        """Whether the callback can still run to completion."""
        if self.finished or self.cancelled:
            return False
        return self.loop is None or not self.loop.is_closed()

    @property
    def discarded(self) -> bool:
        """Whether the call ended without completing."""
        return not self.finished and not self.active

    def cancel(self) -> None:
        """Cancel the call if it has not completed."""
        if self.finished:
            return
        self.cancelled = True
        if self._handle is not None and (self.loop is None or not self.loop.is_closed()):
            self._handle.cancel()

    def __repr__(self) -> str:
        if self.finished:
            state = "finished"
        elif self.discarded:
            state = "discarded"
        else:
            state = "started" if self.started else "waiting"
        return f"ScheduledCall({state})"


class IdleScheduler(ABC):
    """Runs callbacks later, off the caller's critical path.

    A callback may be a plain function or return an awaitable; awaitables
    are run as tasks on the current event loop and kept referenced until
    they finish. Exceptions escaping a callback are logged here, since
    nothing is waiting on the result.
    """

    def __init__(self):
        self._calls: Set[ScheduledCall] = set()

    @abstractmethod
    def schedule(self, callback: IdleCallback, timeout: Optional[float] = None) -> ScheduledCall:
        """Schedule a callback.

        Must be called from a running event loop.

        Args:
            callback: Called with an IdleDeadline
            timeout: Upper bound in seconds before the callback is forced

        Returns:
            Handle tracking the call
        """
        pass

    def pending(self) -> int:
        """Get the number of callbacks that can still complete."""
        self._calls = {call for call in self._calls if call.active}
        return len(self._calls)

    async def drain(self, poll_interval: float = 0.01) -> None:
        """Wait until every scheduled callback has completed or been discarded."""
        while self.pending():
            await asyncio.sleep(poll_interval)

    def _track(self, loop: asyncio.AbstractEventLoop) -> ScheduledCall:
        call = ScheduledCall(loop)
        self._calls.add(call)
        return call

    def _invoke(self, call: ScheduledCall, callback: IdleCallback, did_timeout: bool, budget: float) -> None:
        """Invoke a callback and run its awaitable, if any, to completion."""
        if call.cancelled:
            return
        call.started = True

        deadline = IdleDeadline(did_timeout=did_timeout, budget=budget)
        try:
            result = callback(deadline)
        except Exception as e:
            logger.error(f"Idle callback failed: {e}")
            call.finished = True
            return

        if not inspect.isawaitable(result):
            call.finished = True
            return

        future = asyncio.ensure_future(result)
        call._handle = future
        future.add_done_callback(lambda done: self._on_done(call, done))

    def _on_done(self, call: ScheduledCall, future: asyncio.Future) -> None:
        if future.cancelled():
            call.cancelled = True
            return
        call.finished = True
        error = future.exception()
        if error is not None:
            logger.error(f"Idle callback failed: {error}")


class TimerScheduler(IdleScheduler):
    """Fixed-delay fallback.

    Runs every callback ``delay`` seconds after it was scheduled, whether or
    not the loop is busy, and always reports ``did_timeout=True`` with no
    time remaining. The timeout hint is ignored.

    Example:
        scheduler = TimerScheduler(delay=0.2)
        scheduler.schedule(lambda deadline: print(deadline.did_timeout))
    """

    def __init__(self, delay: float = 0.2):
        super().__init__()
        self.delay = delay

    def schedule(self, callback: IdleCallback, timeout: Optional[float] = None) -> ScheduledCall:
        loop = asyncio.get_running_loop()
        call = self._track(loop)
        call._handle = loop.call_later(self.delay, self._invoke, call, callback, True, 0.0)
        return call

    def __repr__(self) -> str:
        return f"TimerScheduler(delay={self.delay})"


class LoopIdleScheduler(IdleScheduler):
    """Runs callbacks once the event loop has gone quiet.

    Idleness is measured by sampling loop lag: a sleep of ``poll_interval``
    that wakes up no later than ``lag_threshold`` past its due time means
    nothing else was hogging the loop. The callback then gets an
    ``idle_budget`` worth of time_remaining(). When the timeout passes
    first the callback is forced with ``did_timeout=True``.

    Example:
        scheduler = LoopIdleScheduler(SchedulerConfig(idle_budget=0.1))
        scheduler.schedule(refresh, timeout=1.0)
    """

    def __init__(self, config: Optional[SchedulerConfig] = None):
        super().__init__()
        self.config = config or SchedulerConfig()

    def schedule(self, callback: IdleCallback, timeout: Optional[float] = None) -> ScheduledCall:
        loop = asyncio.get_running_loop()
        if timeout is None:
            timeout = self.config.default_timeout

        call = self._track(loop)
        call._handle = loop.create_task(self._wait_for_idle(call, callback, timeout))
        return call

    async def _wait_for_idle(self, call: ScheduledCall, callback: IdleCallback, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            while True:
                due = loop.time() + self.config.poll_interval
                await asyncio.sleep(self.config.poll_interval)
                now = loop.time()

                if now - due <= self.config.lag_threshold:
                    self._invoke(call, callback, False, self.config.idle_budget)
                    return
                if now - started >= timeout:
                    logger.debug(f"Loop busy for {now - started:.3f}s, forcing idle callback")
                    self._invoke(call, callback, True, 0.0)
                    return
        except asyncio.CancelledError:
            call.cancelled = True
            raise

    def __repr__(self) -> str:
        return f"LoopIdleScheduler(budget={self.config.idle_budget})"


def create_scheduler(config: Optional[SchedulerConfig] = None) -> IdleScheduler:
    """Build the scheduler implementation selected by the configuration.

    Args:
        config: Scheduler configuration

    Returns:
        LoopIdleScheduler, or TimerScheduler when native idle is disabled
    """
    config = config or SchedulerConfig()
    if config.native_idle:
        return LoopIdleScheduler(config)
    return TimerScheduler(delay=config.fallback_delay)


__all__ = [
    "IdleDeadline",
    "IdleCallback",
    "IdleScheduler",
    "ScheduledCall",
    "SchedulerConfig",
    "TimerScheduler",
    "LoopIdleScheduler",
    "create_scheduler",
]
