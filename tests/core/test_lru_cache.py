"""Tests for LRU cache utilities."""

from __future__ import annotations

import threading

import pytest

from hieracap.core.lru_cache import (
    DEFAULT_CACHE_MAX_SIZE,
    LRUDict,
    get_cache_max_size,
)


class TestGetCacheMaxSize:
    """Tests for get_cache_max_size()."""

    def test_default_value(self, clean_env):
        """Should return default when env var not set."""
        assert get_cache_max_size() == DEFAULT_CACHE_MAX_SIZE

    def test_env_var_override(self, clean_env, monkeypatch):
        """Should return the configured pattern cache size."""
        monkeypatch.setenv("HIERACAP_PATTERN_CACHE_SIZE", "500")
        assert get_cache_max_size() == 500

    def test_invalid_env_var(self, clean_env, monkeypatch):
        """Should return default for invalid env var."""
        monkeypatch.setenv("HIERACAP_PATTERN_CACHE_SIZE", "not_a_number")
        assert get_cache_max_size() == DEFAULT_CACHE_MAX_SIZE


class TestLRUDict:
    """Tests for LRUDict."""

    def test_basic_set_get(self):
        """Basic set and get operations."""
        cache = LRUDict(max_size=10)
        cache["key1"] = "value1"
        assert cache["key1"] == "value1"

    def test_rejects_zero_size(self):
        """A cache must hold at least one item."""
        with pytest.raises(ValueError):
            LRUDict(max_size=0)

    def test_eviction_on_overflow(self):
        """Should evict oldest items when exceeding max_size."""
        cache = LRUDict(max_size=3)
        cache["a"] = 1
        cache["b"] = 2
        cache["c"] = 3
        cache["d"] = 4

        assert len(cache) == 3
        assert "a" not in cache
        assert list(cache.keys()) == ["b", "c", "d"]

    def test_access_updates_recency(self):
        """Reading an item protects it from eviction."""
        cache = LRUDict(max_size=3)
        cache["a"] = 1
        cache["b"] = 2
        cache["c"] = 3

        _ = cache["a"]
        cache["d"] = 4

        assert "a" in cache
        assert "b" not in cache

    def test_get_does_not_update_recency(self):
        """get() and peek() leave the order untouched."""
        cache = LRUDict(max_size=2)
        cache["a"] = 1
        cache["b"] = 2

        assert cache.get("a") == 1
        assert cache.peek("a") == 1
        cache["c"] = 3

        assert "a" not in cache

    def test_lookup_counts_hits_and_misses(self):
        """lookup() records statistics and updates recency."""
        cache = LRUDict(max_size=4)
        cache["a"] = 1

        assert cache.lookup("a") == 1
        assert cache.lookup("missing") is None

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_on_evict_callback(self):
        """Evicted items are reported to the callback."""
        evicted = []
        cache = LRUDict(max_size=1, on_evict=lambda k, v: evicted.append((k, v)))
        cache["a"] = 1
        cache["b"] = 2

        assert evicted == [("a", 1)]
        assert cache.stats()["evictions"] == 1

    def test_pop_and_delete(self):
        """pop() and del remove items from the order too."""
        cache = LRUDict(max_size=3)
        cache["a"] = 1
        cache["b"] = 2

        assert cache.pop("a") == 1
        assert cache.pop("missing", None) is None
        del cache["b"]

        assert len(cache) == 0
        assert cache.keys() == []

    def test_remove_where(self):
        """remove_where() drops matching items and reports the count."""
        cache = LRUDict(max_size=10)
        for i in range(6):
            cache[i] = i * 10

        removed = cache.remove_where(lambda k, v: v >= 30)

        assert removed == 3
        assert cache.keys() == [0, 1, 2]

    def test_values_and_items_in_order(self):
        """values() and items() follow LRU order."""
        cache = LRUDict(max_size=3)
        cache["a"] = 1
        cache["b"] = 2
        _ = cache["a"]

        assert cache.values() == [2, 1]
        assert cache.items() == [("b", 2), ("a", 1)]

    def test_clear(self):
        """clear() empties data and order."""
        cache = LRUDict(max_size=3)
        cache["a"] = 1
        cache.clear()

        assert len(cache) == 0
        assert list(cache) == []

    def test_stats_utilization(self):
        """Utilization is size over capacity."""
        cache = LRUDict(max_size=4)
        cache["a"] = 1

        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["max_size"] == 4
        assert stats["utilization"] == 0.25

    def test_thread_safety(self):
        """Concurrent writers never exceed the bound."""
        cache = LRUDict(max_size=50)

        def writer(offset):
            for i in range(200):
                cache[offset * 1000 + i] = i
                cache.lookup(offset * 1000 + i // 2)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 50
        assert len(cache.keys()) == 50
