"""SWRCache - Stale-While-Revalidate Cache for Async Fetches.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Caches the result of an expensive async fetch in a persistent store:
- Immediate answers from the store, even when the entry has expired
- At most one background refresh per cache at a time
- Refreshes deferred until the event loop is idle (timer fallback)
- Pluggable stores (memory, file, Redis)
- Unreadable entries treated as misses, never as errors

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    SWRCache System                       │
    ├─────────────────────────────────────────────────────────┤
    │  ┌──────────────────┐      ┌──────────────────┐         │
    │  │   CacheManager   │──────│    CacheEntry    │  CACHE  │
    │  │ get_data/refresh │      │ expiration/value │  LAYER  │
    │  └────────┬─────────┘      └──────────────────┘         │
    │           │                                              │
    │  ┌────────┴──────────────────────────────────┐          │
    │  │              Idle Scheduler                │  SCHED   │
    │  │   ┌──────────────┐   ┌──────────────┐     │  LAYER   │
    │  │   │   LoopIdle   │   │    Timer     │     │          │
    │  │   └──────────────┘   └──────────────┘     │          │
    │  └───────────────────────────────────────────┘          │
    │           │                                              │
    │  ┌────────┴──────────────────────────────────┐          │
    │  │             Persistent Stores              │  STORE   │
    │  │   ┌────────┐  ┌────────┐  ┌────────┐      │  LAYER   │
    │  │   │ Memory │  │  File  │  │ Redis  │      │          │
    │  │   └────────┘  └────────┘  └────────┘      │          │
    │  └───────────────────────────────────────────┘          │
    └─────────────────────────────────────────────────────────┘

Example Usage:
    from swrcache_core import CacheManager, FileStore

    async def fetch_items():
        return await api.list_items()

    manager = CacheManager(
        "items",
        expiration_seconds=20,
        fetch_function=fetch_items,
        on_background_refresh=lambda items: render(items),
        store=FileStore("/var/cache/myapp"),
    )

    items = await manager.get_data()             # cached, stale or fetched
    items = await manager.get_data(reload=True)  # always fetched
    manager.update_expiration(60)                # applies to the next write
"""

__version__ = "1.0.0"
__author__ = "BlackRoad OS"

from swrcache_core.cache.entry import (
    CacheEntry,
    MalformedEntryError,
)
from swrcache_core.cache.manager import (
    CacheManager,
    CacheManagerConfig,
    CacheStats,
)
from swrcache_core.scheduler.idle import (
    IdleDeadline,
    IdleScheduler,
    LoopIdleScheduler,
    ScheduledCall,
    SchedulerConfig,
    TimerScheduler,
    create_scheduler,
)
from swrcache_core.store.backend import (
    PersistentStore,
    StorageConfig,
    StorageStats,
)
from swrcache_core.store.memory import MemoryStore
from swrcache_core.store.file import FileStore
from swrcache_core.store.redis import RedisStore, RedisConfig

__all__ = [
    # Cache
    "CacheManager",
    "CacheManagerConfig",
    "CacheStats",
    "CacheEntry",
    "MalformedEntryError",
    # Scheduler
    "IdleDeadline",
    "IdleScheduler",
    "LoopIdleScheduler",
    "ScheduledCall",
    "SchedulerConfig",
    "TimerScheduler",
    "create_scheduler",
    # Storage
    "PersistentStore",
    "StorageConfig",
    "StorageStats",
    "MemoryStore",
    "FileStore",
    "RedisStore",
    "RedisConfig",
]
