"""
Watchroom — Expiring in-memory cache

Design patterns:
  - Cache Aside: callers check get() before doing the expensive read
  - Lazy Eviction: stale entries are dropped on lookup, never by a sweeper

Entries live only in process memory for the life of the owner.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiringCache(Generic[K, V]):
    """Key/value store whose entries expire `ttl_seconds` after being put."""

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[K, Tuple[float, V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at < self._ttl:
            return value
        del self._entries[key]
        return None

    def put(self, key: K, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
