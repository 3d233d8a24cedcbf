"""SWRCache Persistent Store - Abstract String Storage Interface.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class StorageConfig:
    """Storage backend configuration.

    Attributes:
        name: Backend name
        encoding: Text encoding for backends that persist bytes
    """

    name: str = "storage"
    encoding: str = "utf-8"


@dataclass
class StorageStats:
    """Storage backend statistics.

    Attributes:
        reads: Number of read operations
        writes: Number of write operations
        deletes: Number of delete operations
        errors: Number of errors
    """

    reads: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def record_error(self, error: str) -> None:
        """Record an error."""
        self.errors += 1
        self.last_error = error
        self.last_error_at = datetime.now()


class PersistentStore(ABC):
    """Abstract durable key-value store holding strings.

    Implementations provide different persistence strategies:
    - MemoryStore: In-process dictionary
    - FileStore: One file per key on local disk
    - RedisStore: Redis backend

    Stores are presumed reliable. Failures are logged, recorded in the
    stats and re-raised to the caller.
    """

    def __init__(self, config: Optional[StorageConfig] = None):
        """Initialize store.

        Args:
            config: Storage configuration
        """
        self.config = config or StorageConfig()
        self._stats = StorageStats()

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get stored string by key.

        Args:
            key: Store key

        Returns:
            Stored string or None
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a string, replacing any previous value.

        Args:
            key: Store key
            value: String to store
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Remove a key.

        Args:
            key: Store key

        Returns:
            True if something was removed
        """
        pass

    @abstractmethod
    def keys(self, pattern: Optional[str] = None) -> List[str]:
        """Get all keys.

        Args:
            pattern: Optional glob pattern

        Returns:
            List of keys
        """
        pass

    def exists(self, key: str) -> bool:
        """Check if key exists.

        Args:
            key: Store key

        Returns:
            True if exists
        """
        return self.get(key) is not None

    def get_stats(self) -> StorageStats:
        """Get storage statistics.

        Returns:
            StorageStats instance
        """
        return self._stats

    def reset_stats(self) -> None:
        """Reset statistics."""
        self._stats = StorageStats()

    def _fail(self, operation: str, key: str, error: Exception) -> None:
        """Log and record a failed operation."""
        logger.error(f"{self.config.name}: {operation} {key!r} failed: {error}")
        self._stats.record_error(str(error))

    def __contains__(self, key: str) -> bool:
        """Check if key exists."""
        return self.exists(key)

    def __len__(self) -> int:
        """Get key count."""
        return len(self.keys())

    def __iter__(self) -> Iterator[str]:
        """Iterate over keys."""
        return iter(self.keys())


__all__ = ["PersistentStore", "StorageConfig", "StorageStats"]
