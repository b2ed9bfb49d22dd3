"""Unit tests for the LRU plan cache."""

import pytest

from querymesh.models.plan import ExecutionPlan
from querymesh.services.cache import LRUPlanCache, plan_cache_key


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def _plan(strategy="parallel"):
    return ExecutionPlan(processing_strategy=strategy)


class TestPlanCacheKey:
    def test_normalizes_text_and_candidate_order(self):
        first = plan_cache_key("How many  donations?", ["b", "a"])
        second = plan_cache_key("how many donations?", ["a", "b"])
        assert first == second

    def test_different_candidates_give_different_keys(self):
        assert plan_cache_key("q", ["a"]) != plan_cache_key("q", ["a", "b"])


class TestLRUPlanCache:
    def test_hit_and_miss_counts(self, clock):
        cache = LRUPlanCache(max_size=4, clock=clock)
        cache.put("k", _plan())

        assert cache.get("k").processing_strategy == "parallel"
        assert cache.get("other") is None
        assert cache.hits == 1
        assert cache.misses == 1

    def test_least_recently_used_evicted(self, clock):
        cache = LRUPlanCache(max_size=2, clock=clock)
        cache.put("a", _plan())
        cache.put("b", _plan())
        cache.get("a")
        cache.put("c", _plan())

        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_entries_expire_after_ttl(self, clock):
        cache = LRUPlanCache(max_size=2, ttl_seconds=60, clock=clock)
        cache.put("a", _plan())

        clock.now = 61
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_returned_plan_is_a_copy(self, clock):
        cache = LRUPlanCache(clock=clock)
        cache.put("a", _plan())

        cache.get("a").optimization_recommendations.append("mutated")

        assert cache.get("a").optimization_recommendations == []

    def test_max_size_must_be_positive(self):
        with pytest.raises(ValueError):
            LRUPlanCache(max_size=0)
