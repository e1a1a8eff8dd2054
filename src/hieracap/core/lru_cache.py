# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""LRU (Least Recently Used) cache used by the pattern cache and capability store.

Bounded so that hot-path caches cannot grow without limit under a stream
of distinct patterns or capabilities.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterator
from typing import Any, Optional, TypeVar

# Default max size for LRU caches (configurable via HIERACAP_PATTERN_CACHE_SIZE)
DEFAULT_CACHE_MAX_SIZE = 4096

K = TypeVar("K")
V = TypeVar("V")


def get_cache_max_size() -> int:
    """Get the configured cache max size from config."""
    from .config import get_config

    try:
        return get_config().pattern_cache_size
    except Exception:
        return DEFAULT_CACHE_MAX_SIZE


class LRUDict(dict[K, V]):
    """
    A dictionary with LRU (Least Recently Used) eviction policy.

    When the cache exceeds max_size, the least recently accessed items
    are evicted to maintain the size limit. ``lookup`` additionally keeps
    hit/miss counters for cache statistics.

    Thread-safe for concurrent access. Reads update recency, so every
    access takes the same mutex.

    Example:
        cache = LRUDict(max_size=100)
        cache["key1"] = "value1"
        cache.lookup("key1")  # "value1", counted as a hit
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        on_evict: Optional[Callable[[K, V], None]] = None,
    ) -> None:
        """
        Initialize LRU cache.

        Args:
            max_size: Maximum number of items. If None, uses
                      HIERACAP_PATTERN_CACHE_SIZE or DEFAULT_CACHE_MAX_SIZE.
            on_evict: Optional callback invoked with (key, value) for each
                      item dropped because of the size limit.
        """
        super().__init__()
        self._max_size = max_size if max_size is not None else get_cache_max_size()
        if self._max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._order: OrderedDict[K, None] = OrderedDict()
        self._lock = threading.RLock()
        self._on_evict = on_evict
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_size(self) -> int:
        """Maximum cache size."""
        return self._max_size

    def __setitem__(self, key: K, value: V) -> None:
        """Set item and update access order."""
        with self._lock:
            if key in self._order:
                self._order.move_to_end(key)
            else:
                self._order[key] = None

            super().__setitem__(key, value)
            self._evict_if_needed()

    def __getitem__(self, key: K) -> V:
        """Get item and mark as recently used."""
        with self._lock:
            value = super().__getitem__(key)
            if key in self._order:
                self._order.move_to_end(key)
            return value

    def __delitem__(self, key: K) -> None:
        with self._lock:
            super().__delitem__(key)
            self._order.pop(key, None)

    def lookup(self, key: K) -> Optional[V]:
        """Get item, mark it as recently used, and record a hit or miss."""
        with self._lock:
            if super().__contains__(key):
                self._hits += 1
                self._order.move_to_end(key)
                return super().__getitem__(key)
            self._misses += 1
            return None

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """Get item without updating access order (peek)."""
        with self._lock:
            return super().get(key, default)

    def peek(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """Get item without updating access order."""
        return self.get(key, default)

    def pop(self, key: K, *args: Any) -> V:
        """Remove and return item."""
        with self._lock:
            self._order.pop(key, None)
            return super().pop(key, *args)

    def remove_where(self, predicate: Callable[[K, V], bool]) -> int:
        """Remove every item for which ``predicate(key, value)`` is true.

        Returns:
            Number of items removed.
        """
        with self._lock:
            doomed = [k for k in self._order if predicate(k, dict.__getitem__(self, k))]
            for k in doomed:
                self._order.pop(k, None)
                super().pop(k, None)
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            super().clear()
            self._order.clear()

    def _evict_if_needed(self) -> None:
        """Evict oldest items if over max size."""
        while len(self._order) > self._max_size:
            oldest_key = next(iter(self._order))
            self._order.pop(oldest_key)
            value = super().pop(oldest_key, None)
            self._evictions += 1
            if self._on_evict is not None:
                self._on_evict(oldest_key, value)

    def __iter__(self) -> Iterator[K]:
        """Iterate over keys in order (oldest to newest)."""
        with self._lock:
            return iter(list(self._order.keys()))

    def keys(self) -> Any:
        """Return keys in LRU order."""
        with self._lock:
            return list(self._order.keys())

    def values(self) -> Any:
        """Return values in LRU order."""
        with self._lock:
            return [super(LRUDict, self).get(k) for k in self._order.keys()]

    def items(self) -> Any:
        """Return items in LRU order."""
        with self._lock:
            return [(k, super(LRUDict, self).get(k)) for k in self._order.keys()]

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self),
                "max_size": self._max_size,
                "utilization": len(self) / self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "evictions": self._evictions,
            }
