"""Tests for the read-through cache wrapper."""

import json
from unittest.mock import MagicMock

from marketplace.errors import DependencyUnavailable
from marketplace.services.cache import ReadThroughCache


class Counter:
    def __init__(self, payload):
        self.payload = payload
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.payload


class TestHitMiss:
    def test_miss_computes_and_stores(self, cache, cache_store):
        compute = Counter({"services": [1, 2]})
        assert cache.with_cache("services:list:page=1", 900, compute) == {"services": [1, 2]}
        assert compute.calls == 1
        assert json.loads(cache_store.get("services:list:page=1")) == {"services": [1, 2]}

    def test_hit_skips_compute(self, cache):
        compute = Counter([1, 2, 3])
        cache.with_cache("k", 60, compute)
        assert cache.with_cache("k", 60, compute) == [1, 2, 3]
        assert compute.calls == 1

    def test_recomputes_after_ttl(self, cache, clock):
        compute = Counter("v")
        cache.with_cache("k", 60, compute)
        clock.advance(61)
        cache.with_cache("k", 60, compute)
        assert compute.calls == 2

    def test_default_ttl_when_none(self, cache, clock):
        compute = Counter("v")
        cache.with_cache("k", None, compute)
        clock.advance(299)
        cache.with_cache("k", None, compute)
        assert compute.calls == 1
        clock.advance(1)
        cache.with_cache("k", None, compute)
        assert compute.calls == 2

    def test_undecodable_entry_is_recomputed(self, cache, cache_store):
        cache_store.set("k", "{not json", 60)
        compute = Counter({"fresh": True})
        assert cache.with_cache("k", 60, compute) == {"fresh": True}
        assert compute.calls == 1


class TestStoreUnavailable:
    def test_get_failure_falls_back_to_compute(self):
        store = MagicMock()
        store.get.side_effect = DependencyUnavailable("down")
        cache = ReadThroughCache(store)
        compute = Counter({"ok": 1})

        assert cache.with_cache("k", 60, compute) == {"ok": 1}
        assert cache.with_cache("k", 60, compute) == {"ok": 1}
        assert compute.calls == 2
        store.set.assert_not_called()

    def test_set_failure_still_returns_value(self):
        store = MagicMock()
        store.get.return_value = None
        store.set.side_effect = DependencyUnavailable("down")
        cache = ReadThroughCache(store)

        assert cache.with_cache("k", 60, Counter([1])) == [1]

    def test_unserializable_payload_is_returned_uncached(self, cache, cache_store):
        payload = {"when": object()}
        assert cache.with_cache("k", 60, lambda: payload) is payload
        assert cache_store.get("k") is None
