"""Small in-memory TTL cache for recently issued image URLs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Store cached value with expiration metadata."""

    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """Process-wide cache whose entries expire ``ttl_seconds`` after insertion.

    Expired entries are dropped on every insert and read, and at most
    ``max_entries`` live entries are kept (oldest evicted first), so the map
    stays bounded even when nobody reads it.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._data: Dict[K, CacheEntry[V]] = {}

    def set(self, key: K, value: V) -> None:
        """Insert a value, evicting expired and then the oldest entries."""
        self.purge_expired()
        self._data.pop(key, None)
        while len(self._data) >= self.max_entries:
            del self._data[next(iter(self._data))]
        self._data[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._data.items() if entry.expires_at <= now]
        for key in expired:
            del self._data[key]
        return len(expired)

    def keys(self) -> List[K]:
        """Live keys, oldest first."""
        self.purge_expired()
        return list(self._data)

    def clear(self) -> None:
        """Remove all entries."""
        self._data.clear()

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._data)
