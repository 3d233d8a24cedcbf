"""Store module - Persistent string stores."""

from swrcache_core.store.backend import (
    PersistentStore,
    StorageStats,
    StorageConfig,
)
from swrcache_core.store.memory import MemoryStore
from swrcache_core.store.file import FileStore
from swrcache_core.store.redis import RedisStore, RedisConfig

__all__ = [
    "PersistentStore",
    "StorageStats",
    "StorageConfig",
    "MemoryStore",
    "FileStore",
    "RedisStore",
    "RedisConfig",
]
