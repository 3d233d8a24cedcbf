"""Cache module - Stale-while-revalidate cache management.

This module provides the cache manager and the stored entry envelope.
"""

from swrcache_core.cache.entry import (
    CacheEntry,
    MalformedEntryError,
)
from swrcache_core.cache.manager import (
    CacheManager,
    CacheManagerConfig,
    CacheStats,
)

__all__ = [
    "CacheEntry",
    "MalformedEntryError",
    "CacheManager",
    "CacheManagerConfig",
    "CacheStats",
]
