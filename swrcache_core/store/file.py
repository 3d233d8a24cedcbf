"""SWRCache File Store - Local Disk String Store.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

from swrcache_core.store.backend import PersistentStore, StorageConfig

logger = logging.getLogger(__name__)


class FileStore(PersistentStore):
    """File-based string store.

    Persists values to disk so cached data survives restarts, the same
    role browser local storage plays for a page. Each key is kept in its
    own file inside a sharded directory tree. A small JSON record holds
    the original key next to the value so ``keys()`` can report it.

    Example:
        store = FileStore("/var/cache/myapp")
        store.set("key", "data")
        text = store.get("key")
    """

    SHARD_COUNT = 256

    def __init__(
        self,
        base_path: str,
        config: Optional[StorageConfig] = None,
    ):
        """Initialize file store.

        Args:
            base_path: Base directory for store files
            config: Storage configuration
        """
        super().__init__(config or StorageConfig(name="file"))
        self.base_path = Path(base_path)
        self._lock = threading.RLock()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get file path for key.

        Args:
            key: Store key

        Returns:
            File path
        """
        digest = hashlib.sha256(key.encode()).hexdigest()
        shard = f"{int(digest[:2], 16) % self.SHARD_COUNT:02x}"
        return self.base_path / shard / digest

    def _read(self, path: Path) -> dict:
        with open(path, "r", encoding=self.config.encoding) as f:
            return json.load(f)

    def get(self, key: str) -> Optional[str]:
        path = self._get_path(key)

        try:
            with self._lock:
                self._stats.reads += 1
                if not path.exists():
                    return None
                return self._read(path)["value"]

        except Exception as e:
            self._fail("get", key, e)
            raise

    def set(self, key: str, value: str) -> None:
        path = self._get_path(key)
        temp_path = path.with_suffix(".tmp")

        try:
            with self._lock:
                path.parent.mkdir(exist_ok=True)

                # Atomic write
                with open(temp_path, "w", encoding=self.config.encoding) as f:
                    json.dump({"key": key, "value": value}, f)

                temp_path.replace(path)
                self._stats.writes += 1

        except Exception as e:
            self._fail("set", key, e)
            if temp_path.exists():
                temp_path.unlink()
            raise

    def remove(self, key: str) -> bool:
        path = self._get_path(key)

        try:
            with self._lock:
                if path.exists():
                    path.unlink()
                    self._stats.deletes += 1
                    return True
                return False

        except Exception as e:
            self._fail("remove", key, e)
            raise

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        """Get all keys.

        Note: reads every file, so this is expensive for large stores.

        Args:
            pattern: Optional glob pattern

        Returns:
            List of keys
        """
        keys = []

        with self._lock:
            for shard_dir in self.base_path.iterdir():
                if not shard_dir.is_dir():
                    continue
                for file_path in shard_dir.iterdir():
                    if not file_path.is_file() or file_path.suffix == ".tmp":
                        continue
                    key = self._read(file_path).get("key", "")
                    if pattern is None or fnmatch.fnmatch(key, pattern):
                        keys.append(key)

        return keys

    def __repr__(self) -> str:
        return f"FileStore(path={self.base_path})"


__all__ = ["FileStore"]
