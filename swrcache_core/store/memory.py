"""SWRCache Memory Store - In-Memory String Store.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
from typing import Dict, List, Optional

from swrcache_core.store.backend import PersistentStore, StorageConfig

logger = logging.getLogger(__name__)


class MemoryStore(PersistentStore):
    """In-memory string store.

    The default store for a CacheManager. Nothing survives the process,
    which makes it the right choice for tests and short-lived hosts.

    Example:
        store = MemoryStore()
        store.set("key", '{"expiration": "...", "value": 1}')
        text = store.get("key")
    """

    def __init__(self, config: Optional[StorageConfig] = None):
        """Initialize memory store.

        Args:
            config: Storage configuration
        """
        super().__init__(config or StorageConfig(name="memory"))
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._stats.reads += 1
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            error = TypeError(f"MemoryStore holds strings, got {type(value).__name__}")
            self._fail("set", key, error)
            raise error

        with self._lock:
            self._data[key] = value
            self._stats.writes += 1

    def remove(self, key: str) -> bool:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._stats.deletes += 1
                return True
            return False

    def exists(self, key: str) -> bool:
        return key in self._data

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        with self._lock:
            if pattern is None:
                return list(self._data.keys())
            return [k for k in self._data.keys() if fnmatch.fnmatch(k, pattern)]

    def clear(self) -> int:
        """Remove every key.

        Returns:
            Number cleared
        """
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    def __repr__(self) -> str:
        return f"MemoryStore(keys={len(self._data)})"


__all__ = ["MemoryStore"]
