"""
Bounded in-memory cache with TTL expiry and LRU eviction.

``BoundedTTLCache`` sits in front of the network source so repeated reads of
the same asset do not hit the remote API (and its rate limits) within the TTL
window. It is a latency shield, not a source of truth: nothing is persisted
and everything is lost on restart.

Architecture:
    ::

        BoundedTTLCache
        ├── _entries: OrderedDict[key, CacheEntry]   (oldest access first)
        ├── get(key)    → value | None   (refreshes recency, evicts if expired)
        ├── set(key, v) → None           (evicts LRU entry on overflow)
        ├── has(key)    → bool           (does NOT refresh recency)
        ├── delete(key) → bool
        ├── clear()
        └── size()      → int

Examples:
    >>> cache = BoundedTTLCache(max_size=2, ttl_seconds=300)
    >>> cache.set("a", 1)
    >>> cache.set("b", 2)
    >>> cache.get("a")
    1
    >>> cache.set("c", 3)   # "b" is least recently used
    >>> cache.has("b")
    False

Performance:
    - O(1) get/set/has/delete (OrderedDict move_to_end / popitem)
    - TTL cleanup is lazy: expired entries are dropped when touched

Guardrails:
    ❌ DON'T: Share one instance across processes (no coordination)
    ✅ DO: Give each network source its own cache

Tags:
    cache, ttl, lru, configspine
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")

DEFAULT_MAX_SIZE = 500
DEFAULT_TTL_SECONDS = 300.0


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and the clock reading at which it was inserted."""

    key: str
    value: V
    inserted_at: float


class BoundedTTLCache(Generic[V]):
    """Capacity-bounded, time-expiring key/value cache.

    Attributes:
        max_size: Maximum number of entries before LRU eviction.
        ttl_seconds: Lifetime of an entry, measured from insertion.
    """

    def __init__(
        self,
        *,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries (must be positive).
            ttl_seconds: Entry lifetime in seconds (must be positive).
            clock: Monotonic time source; injectable for tests.
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _expired(self, entry: CacheEntry[V]) -> bool:
        return self._clock() - entry.inserted_at >= self._ttl

    def get(self, key: str) -> V | None:
        """Return the cached value, or ``None`` on a miss or expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._expired(entry):
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: V) -> None:
        """Store a value, evicting the least recently accessed entry on overflow."""
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)

        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())

    def has(self, key: str) -> bool:
        """Check whether a live entry exists without touching its recency."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._expired(entry):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        """Remove a key. Returns whether it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def size(self) -> int:
        """Return the number of stored entries (expired ones included until touched)."""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "BoundedTTLCache",
    "CacheEntry",
    "DEFAULT_MAX_SIZE",
    "DEFAULT_TTL_SECONDS",
]
