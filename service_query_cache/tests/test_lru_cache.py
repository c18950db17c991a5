"""
Unit tests for the bounded LRU cache.
"""

import pytest

from service_query_cache.app.caching import Cache, PersistedTTLStore
from service_query_cache.app.caching.lru import LRUCache
from shared.errors import CapacityError
from shared.metrics import CacheMetrics
from shared.test_helpers import VirtualClock


class TestLRUCache:
    """Test cases for LRUCache."""

    @pytest.fixture
    def clock(self):
        return VirtualClock()

    @pytest.fixture
    def cache(self, clock):
        return LRUCache(max_size=2, default_ttl=60, clock=clock)

    def test_defaults(self):
        """Default capacity and TTL."""
        cache = LRUCache()
        assert cache.max_size == 100
        assert cache.default_ttl == 300.0
        assert cache.survives_restart is False

    @pytest.mark.parametrize("max_size", [0, -1])
    def test_rejects_non_positive_capacity(self, max_size):
        """Capacity is validated at construction time."""
        with pytest.raises(CapacityError) as exc_info:
            LRUCache(max_size=max_size)

        assert exc_info.value.code == "CAPACITY_ERROR"
        assert exc_info.value.details == {"max_size": max_size}

    def test_get_missing_returns_none(self, cache):
        assert cache.get("missing") is None

    def test_eviction_follows_recency_not_insertion(self, cache):
        """A,B,C into size 2 keeps B,C; reading B makes C the victim of D."""
        cache.set("A", 1)
        cache.set("B", 2)
        cache.set("C", 3)
        assert cache.keys() == ["B", "C"]

        assert cache.get("B") == 2
        cache.set("D", 4)

        assert sorted(cache.keys()) == ["B", "D"]
        assert cache.get("C") is None
        assert cache.size() == 2

    def test_updating_existing_key_does_not_evict(self, cache):
        cache.set("A", 1)
        cache.set("B", 2)
        cache.set("A", 10)

        assert cache.size() == 2
        assert cache.get("A") == 10
        assert cache.get("B") == 2

    def test_set_refreshes_recency(self, cache):
        cache.set("A", 1)
        cache.set("B", 2)
        cache.set("A", 1)
        cache.set("C", 3)

        assert "B" not in cache
        assert cache.keys() == ["A", "C"]

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("A", "value", ttl=10)

        clock.tick(10)
        assert cache.get("A") == "value"

        clock.tick(0.001)
        assert cache.get("A") is None
        assert "A" not in cache

    def test_default_ttl_applies(self, cache, clock):
        cache.set("A", "value")
        entry = cache.get_entry("A")

        assert entry.expiry == pytest.approx(clock.now() + 60)
        assert entry.stored_at == clock.now()

    def test_delete_and_clear(self, cache):
        cache.set("A", 1)
        cache.set("B", 2)

        cache.delete("A")
        cache.delete("never-set")
        assert cache.keys() == ["B"]

        cache.clear()
        assert cache.size() == 0
        assert len(cache) == 0

    def test_metrics_recorded(self, clock):
        metrics = CacheMetrics()
        cache = LRUCache(max_size=1, clock=clock, metrics=metrics)

        cache.set("A", 1)
        cache.get("A")
        cache.get("missing")
        cache.set("B", 2)

        hits = metrics.get_metric("cache_hits_total").labels(cache_type="lru")._value.get()
        misses = metrics.get_metric("cache_misses_total").labels(cache_type="lru")._value.get()
        evictions = metrics.get_metric("cache_evictions_total").labels(cache_type="lru")._value.get()
        assert hits == 1
        assert misses == 1
        assert evictions == 1


def test_both_caches_share_interface():
    lru = LRUCache()
    persisted = PersistedTTLStore()

    assert isinstance(lru, Cache) and isinstance(persisted, Cache)
    assert (lru.survives_restart, persisted.survives_restart) == (False, True)
