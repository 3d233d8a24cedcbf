"""SWRCache Entry - Stored Envelope with Absolute Expiration.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class MalformedEntryError(ValueError):
    """Raised when a stored string is not a valid cache entry."""


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a UTC ISO-8601 string with millisecond precision.

    Args:
        moment: Datetime to format (naive values are taken as UTC)

    Returns:
        Timestamp like ``2026-10-16T11:04:05.123Z``
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Args:
        text: Timestamp string

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the string is not a timestamp
        OverflowError: If the UTC conversion leaves the datetime range
    """
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass
class CacheEntry(Generic[T]):
    """A stored value and the moment it becomes stale.

    Attributes:
        expiration: Absolute UTC expiration time
        value: Cached payload (must survive a JSON round trip)
    """

    expiration: datetime
    value: T

    @classmethod
    def create(cls, value: T, ttl_seconds: float, now: datetime) -> "CacheEntry[T]":
        """Create an entry expiring ``ttl_seconds`` after ``now``.

        Args:
            value: Value to cache
            ttl_seconds: Time to live in seconds
            now: Write time

        Returns:
            New CacheEntry
        """
        return cls(expiration=now + timedelta(seconds=ttl_seconds), value=value)

    def is_expired(self, now: datetime) -> bool:
        """Check whether the entry is stale at ``now``."""
        return now > self.expiration

    def remaining_seconds(self, now: datetime) -> float:
        """Get seconds left before expiration (never negative)."""
        return max(0.0, (self.expiration - now).total_seconds())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Dictionary representation
        """
        return {
            "expiration": format_timestamp(self.expiration),
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CacheEntry[Any]":
        """Create from dictionary.

        Args:
            data: Dictionary data

        Returns:
            CacheEntry instance

        Raises:
            MalformedEntryError: If required fields are missing or invalid
        """
        if not isinstance(data, dict):
            raise MalformedEntryError(f"Expected an object, got {type(data).__name__}")
        if "value" not in data:
            raise MalformedEntryError("Entry has no value")

        raw_expiration = data.get("expiration")
        if not isinstance(raw_expiration, str):
            raise MalformedEntryError("Entry has no expiration timestamp")

        try:
            expiration = parse_timestamp(raw_expiration)
        except (ValueError, OverflowError) as e:
            raise MalformedEntryError(f"Invalid expiration {raw_expiration!r}: {e}") from e

        return cls(expiration=expiration, value=data["value"])

    def dumps(self) -> str:
        """Serialize to the store's string form."""
        return json.dumps(self.to_dict())

    @classmethod
    def loads(cls, text: Optional[str]) -> "CacheEntry[Any]":
        """Deserialize from the store's string form.

        Args:
            text: Stored string

        Returns:
            CacheEntry instance

        Raises:
            MalformedEntryError: If the string is not a valid entry
        """
        if not text:
            raise MalformedEntryError("Empty entry")
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise MalformedEntryError(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)

    def __repr__(self) -> str:
        return f"CacheEntry(expiration={format_timestamp(self.expiration)})"


__all__ = ["CacheEntry", "MalformedEntryError", "format_timestamp", "parse_timestamp"]
