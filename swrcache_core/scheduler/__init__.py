"""Scheduler module - Deferred execution during idle time."""

from swrcache_core.scheduler.idle import (
    IdleDeadline,
    IdleScheduler,
    LoopIdleScheduler,
    ScheduledCall,
    SchedulerConfig,
    TimerScheduler,
    create_scheduler,
)

__all__ = [
    "IdleDeadline",
    "IdleScheduler",
    "LoopIdleScheduler",
    "ScheduledCall",
    "SchedulerConfig",
    "TimerScheduler",
    "create_scheduler",
]
