"""SWRCache Redis Store - Redis String Store.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from swrcache_core.store.backend import PersistentStore, StorageConfig

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig(StorageConfig):
    """Redis-specific configuration.

    Attributes:
        host: Redis host
        port: Redis port
        db: Redis database number
        password: Redis password
        socket_timeout: Socket timeout
        socket_connect_timeout: Connection timeout
        max_connections: Connection pool size
        prefix: Key prefix
    """

    name: str = "redis"
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    max_connections: int = 10
    prefix: str = "swrcache:"


class RedisStore(PersistentStore):
    """Redis string store.

    Lets several hosts share cached entries. Entries never carry a Redis
    TTL: expired entries must stay readable so they can be served stale.

    Example:
        store = RedisStore(RedisConfig(host="redis.local", port=6379))
        store.set("key", "data")
        text = store.get("key")
    """

    def __init__(self, config: Optional[RedisConfig] = None, client: Optional[Any] = None):
        """Initialize Redis store.

        Args:
            config: Redis configuration
            client: Pre-built client (skips pool creation)
        """
        super().__init__(config or RedisConfig())
        self.config: RedisConfig = self.config
        self._client: Optional[Any] = client
        self._pool: Optional[Any] = None

    def _ensure_connected(self) -> Any:
        """Ensure Redis connection exists.

        Returns:
            Redis client
        """
        if self._client is not None:
            return self._client

        try:
            import redis
        except ImportError:
            raise ImportError("Redis package not installed. Run: pip install swrcache[redis]")

        self._pool = redis.ConnectionPool(
            host=self.config.host,
            port=self.config.port,
            db=self.config.db,
            password=self.config.password,
            socket_timeout=self.config.socket_timeout,
            socket_connect_timeout=self.config.socket_connect_timeout,
            max_connections=self.config.max_connections,
            decode_responses=False,
        )
        self._client = redis.Redis(connection_pool=self._pool)
        logger.info(f"Connected to Redis at {self.config.host}:{self.config.port}")
        return self._client

    def _make_key(self, key: str) -> str:
        return f"{self.config.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            client = self._ensure_connected()
            self._stats.reads += 1
            data = client.get(self._make_key(key))
        except Exception as e:
            self._fail("get", key, e)
            raise

        if data is None:
            return None
        if isinstance(data, bytes):
            return data.decode(self.config.encoding)
        return data

    def set(self, key: str, value: str) -> None:
        try:
            client = self._ensure_connected()
            client.set(self._make_key(key), value.encode(self.config.encoding))
            self._stats.writes += 1
        except Exception as e:
            self._fail("set", key, e)
            raise

    def remove(self, key: str) -> bool:
        try:
            client = self._ensure_connected()
            result = client.delete(self._make_key(key))
        except Exception as e:
            self._fail("remove", key, e)
            raise

        if result > 0:
            self._stats.deletes += 1
            return True
        return False

    def exists(self, key: str) -> bool:
        try:
            client = self._ensure_connected()
            return client.exists(self._make_key(key)) > 0
        except Exception as e:
            self._fail("exists", key, e)
            raise

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        redis_pattern = f"{self.config.prefix}{pattern or '*'}"
        prefix_len = len(self.config.prefix)

        try:
            client = self._ensure_connected()
            keys = []
            cursor = 0
            while True:
                cursor, batch = client.scan(cursor, match=redis_pattern, count=100)
                for key in batch:
                    key_str = key.decode(self.config.encoding) if isinstance(key, bytes) else key
                    keys.append(key_str[prefix_len:])
                if cursor == 0:
                    break
            return keys

        except Exception as e:
            self._fail("keys", redis_pattern, e)
            raise

    def close(self) -> None:
        """Close Redis connection."""
        if self._pool:
            self._pool.disconnect()
            self._pool = None
            self._client = None

    def __repr__(self) -> str:
        return f"RedisStore(host={self.config.host}, port={self.config.port})"


__all__ = ["RedisStore", "RedisConfig"]
