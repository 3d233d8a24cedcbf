"""SWRCache Manager - Stale-While-Revalidate Cache for Async Fetches.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from swrcache_core.cache.entry import CacheEntry, MalformedEntryError
from swrcache_core.scheduler.idle import (
    IdleDeadline,
    IdleScheduler,
    ScheduledCall,
    create_scheduler,
)
from swrcache_core.store.backend import PersistentStore
from swrcache_core.store.memory import MemoryStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchFunction = Callable[[], Awaitable[T]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _clock_label(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%H:%M:%S")


@dataclass
class CacheManagerConfig:
    """Cache manager configuration.

    Attributes:
        key: Store key managed by the instance
        expiration_seconds: TTL applied to each new write
        refresh_timeout: Timeout hint passed to the idle scheduler
    """

    key: str
    expiration_seconds: float
    refresh_timeout: Optional[float] = None


@dataclass
class CacheStats:
    """Cache manager statistics.

    Attributes:
        hits: Fresh values served from the store
        stale_hits: Expired values served while a refresh was requested
        misses: Lookups that had to fetch before returning
        fetches: Fetches run on the caller's path
        reloads: Forced reloads
        malformed: Stored entries that failed to parse
        refreshes: Background refreshes that stored a fresh value
        refresh_failures: Background refreshes that failed
    """

    hits: int = 0
    stale_hits: int = 0
    misses: int = 0
    fetches: int = 0
    reloads: int = 0
    malformed: int = 0
    refreshes: int = 0
    refresh_failures: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate (stale hits included)."""
        served = self.hits + self.stale_hits
        total = served + self.misses
        return served / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "stale_hits": self.stale_hits,
            "misses": self.misses,
            "fetches": self.fetches,
            "reloads": self.reloads,
            "malformed": self.malformed,
            "refreshes": self.refreshes,
            "refresh_failures": self.refresh_failures,
            "hit_rate": self.hit_rate,
        }


class CacheManager(Generic[T]):
    """Caches the result of one async fetch in a persistent store.

    Callers always get an answer right away when anything usable is
    stored. An expired value is still returned, and a single background
    refresh is handed to the idle scheduler. Only an empty (or unreadable)
    store makes the caller wait for the fetch.

    Example:
        async def load_report() -> dict:
            return await client.get_report()

        manager = CacheManager(
            "report",
            expiration_seconds=300,
            fetch_function=load_report,
            on_background_refresh=render,
            store=FileStore("/var/cache/app"),
        )

        report = await manager.get_data()             # cached or fetched
        report = await manager.get_data(reload=True)  # always fetched
    """

    def __init__(
        self,
        key: str,
        expiration_seconds: float,
        fetch_function: FetchFunction,
        on_background_refresh: Optional[Callable[[T], None]] = None,
        on_log: Optional[Callable[[str], None]] = None,
        store: Optional[PersistentStore] = None,
        scheduler: Optional[IdleScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        refresh_timeout: Optional[float] = None,
    ):
        """Initialize cache manager.

        Args:
            key: Store key
            expiration_seconds: TTL applied to each new write
            fetch_function: Async zero-argument producer of the value
            on_background_refresh: Called with the fresh value after a
                successful background refresh
            on_log: Receives every log message (defaults to the module logger)
            store: Persistent store (defaults to a MemoryStore)
            scheduler: Idle scheduler (defaults to create_scheduler())
            clock: Returns the current aware datetime
            refresh_timeout: Timeout hint for scheduled refreshes
        """
        if not key:
            raise ValueError("Cache key must not be empty")
        _check_ttl(expiration_seconds)

        self.key = key
        self.expiration_seconds = expiration_seconds
        self.refresh_timeout = refresh_timeout

        self._fetch_function = fetch_function
        self._on_background_refresh = on_background_refresh
        self._on_log = on_log or logger.info
        self._store = store if store is not None else MemoryStore()
        self._scheduler = scheduler if scheduler is not None else create_scheduler()
        self._clock = clock or _utc_now

        self._refresh_scheduled = False
        self._refresh_call: Optional[ScheduledCall] = None
        self._stats = CacheStats()

    @classmethod
    def from_config(
        cls,
        config: CacheManagerConfig,
        fetch_function: FetchFunction,
        **kwargs: Any,
    ) -> "CacheManager[T]":
        """Create a manager from a CacheManagerConfig.

        Args:
            config: Manager configuration
            fetch_function: Async zero-argument producer of the value
            **kwargs: Any other constructor argument

        Returns:
            CacheManager instance
        """
        return cls(
            config.key,
            config.expiration_seconds,
            fetch_function,
            refresh_timeout=config.refresh_timeout,
            **kwargs,
        )

    @property
    def refresh_scheduled(self) -> bool:
        """Whether a background refresh is pending."""
        self._release_discarded_refresh()
        return self._refresh_scheduled

    @property
    def store(self) -> PersistentStore:
        return self._store

    @property
    def scheduler(self) -> IdleScheduler:
        return self._scheduler

    @property
    def stats(self) -> CacheStats:
        return self._stats

    async def get_data(self, reload: bool = False) -> T:
        """Get the cached value, fetching it only when nothing usable is stored.

        An expired value is returned as-is and a background refresh is
        scheduled. Errors raised by the fetch function propagate only when
        it runs on this path.

        Args:
            reload: Remove the stored entry first, forcing a fresh fetch

        Returns:
            Cached, stale or freshly fetched value
        """
        if reload:
            self._store.remove(self.key)
            self._stats.reloads += 1
            self._log("Reload requested. Cache cleared.")

        entry = self._read_entry()

        if entry is not None:
            if entry.is_expired(self._clock()):
                self._stats.stale_hits += 1
                self._log(
                    f"Cache expired (expired at: {_clock_label(entry.expiration)}). "
                    f"Scheduling background refresh."
                )
                self._schedule_refresh()
            else:
                self._stats.hits += 1
            return entry.value

        self._stats.misses += 1
        self._stats.fetches += 1
        fresh_data = await self._fetch_function()
        self._write_entry(fresh_data)
        return fresh_data

    def update_expiration(self, new_expiration_seconds: float) -> None:
        """Change the TTL used for subsequent writes.

        Entries already in the store keep their expiration.

        Args:
            new_expiration_seconds: New TTL in seconds
        """
        _check_ttl(new_expiration_seconds)
        self.expiration_seconds = new_expiration_seconds
        self._log(f"Expiration seconds updated to {new_expiration_seconds}")

    def get_expiration(self) -> Optional[datetime]:
        """Get the expiration of the stored entry.

        Returns:
            Expiration datetime, or None if nothing valid is stored
        """
        text = self._store.get(self.key)
        if text is None:
            return None
        try:
            return CacheEntry.loads(text).expiration
        except MalformedEntryError:
            return None

    def clear(self) -> bool:
        """Remove the stored entry.

        Returns:
            True if an entry was removed
        """
        removed = self._store.remove(self.key)
        self._log("Cache cleared.")
        return removed

    def _read_entry(self) -> Optional[CacheEntry[T]]:
        text = self._store.get(self.key)
        if text is None:
            return None

        try:
            entry = CacheEntry.loads(text)
        except MalformedEntryError as e:
            self._stats.malformed += 1
            self._log(f"Invalid cache found. ({e})")
            return None

        self._log(f"Cache hit. Returning cached data. Expiration: {_clock_label(entry.expiration)}")
        return entry

    def _write_entry(self, data: T) -> None:
        entry = CacheEntry.create(data, self.expiration_seconds, self._clock())
        self._store.set(self.key, entry.dumps())
        self._log(f"Cache updated. New expiration: {_clock_label(entry.expiration)}")

    def _schedule_refresh(self) -> None:
        if self.refresh_scheduled:
            return
        self._refresh_scheduled = True
        self._refresh_call = self._scheduler.schedule(self._refresh, self.refresh_timeout)

    def _release_discarded_refresh(self) -> None:
        # A refresh whose event loop closed (or that was cancelled) before it
        # ran never reaches its finally block.
        call = self._refresh_call
        if not self._refresh_scheduled or call is None or not call.discarded:
            return
        self._refresh_scheduled = False
        self._refresh_call = None
        self._log("Scheduled background refresh was discarded.")

    async def _refresh(self, deadline: IdleDeadline) -> None:
        self._log("Background refresh starting.")
        try:
            fresh_data = await self._fetch_function()
            self._write_entry(fresh_data)
        except Exception as e:
            self._stats.refresh_failures += 1
            self._log(f"Error during background refresh: {e}")
            logger.error(f"Background refresh of {self.key!r} failed: {e}")
        else:
            self._stats.refreshes += 1
            self._log("Background refresh completed.")
            self._notify_refresh(fresh_data)
        finally:
            self._refresh_scheduled = False
            self._refresh_call = None

    def _notify_refresh(self, fresh_data: T) -> None:
        if self._on_background_refresh is None:
            return
        try:
            self._on_background_refresh(fresh_data)
        except Exception as e:
            self._log(f"Error in background refresh observer: {e}")
            logger.error(f"Background refresh observer for {self.key!r} failed: {e}")

    def _log(self, message: str) -> None:
        self._on_log(message)

    def __repr__(self) -> str:
        return (
            f"CacheManager(key={self.key!r}, expiration_seconds={self.expiration_seconds}, "
            f"refresh_scheduled={self._refresh_scheduled})"
        )


def _check_ttl(seconds: float) -> None:
    if seconds < 0:
        raise ValueError(f"Expiration seconds must not be negative, got {seconds}")


__all__ = ["CacheManager", "CacheManagerConfig", "CacheStats", "FetchFunction"]
