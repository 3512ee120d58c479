import logging
import random
from concurrent.futures import Future
from datetime import datetime, timezone

import pytest

from community_data import keys
from community_data.cache import MemoryKeyValueCache
from community_data.http import ProviderError
from community_data.places import ScoredPlace
from community_data.pools import PlacePoolCache
from community_data.sampling import WeightedSampler
from community_data.store import CachedPlacePool, CommunityCache

FEB_1 = datetime(2026, 2, 1, 0, 0, 1, tzinfo=timezone.utc)
POOL_KEY = keys.pool_key("94110", "dining")


class RecordingExecutor:
    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args, **kwargs):
        self.submitted.append((fn, args, kwargs))
        return Future()

    def run_all(self):
        pending, self.submitted = self.submitted, []
        for fn, args, kwargs in pending:
            fn(*args, **kwargs)

    def shutdown(self, wait=True):
        pass


def place(name, rating, reviews):
    return ScoredPlace(
        name=name,
        rating=rating,
        review_count=reviews,
        address=f"{name} St",
        category="dining",
        place_id=name.lower(),
    )


def make_pools(now=FEB_1):
    backend = MemoryKeyValueCache()
    cache = CommunityCache(backend, now=lambda: now)
    executor = RecordingExecutor()
    pools = PlacePoolCache(cache, WeightedSampler(random.Random(7)), executor=executor, now=lambda: now)
    return pools, cache, executor


def seed_pool(cache, fetched_at, items):
    cache.set_place_pool(POOL_KEY, CachedPlacePool(items=items, fetched_at=fetched_at, query_count=2))


def test_missing_pool_is_fetched_ranked_and_sampled():
    pools, cache, executor = make_pools()
    fetched = [place("Third", 3.9, 5), place("First", 4.8, 500), place("Second", 4.2, 50)]

    pool = pools.get_pool(POOL_KEY, lambda: fetched, pool_max=50, query_count=2)
    assert [p.name for p in pool] == ["First", "Second", "Third"]
    stored = cache.get_place_pool(POOL_KEY)
    assert stored.fetched_at == "2026-02-01T00:00:01+00:00"
    assert stored.query_count == 2

    sampled = pools.get_pooled_places(POOL_KEY, lambda: fetched, display_limit=3, pool_max=50)
    assert sorted(p.name for p in sampled) == ["First", "Second", "Third"]
    assert executor.submitted == []


def test_fresh_pool_is_served_without_fetching():
    pools, cache, executor = make_pools()
    seed_pool(cache, "2026-02-01T00:00:00Z", [place("Cached", 4.6, 300)])

    def fetch():
        raise AssertionError("fresh pool should not refetch")

    assert [p.name for p in pools.get_pool(POOL_KEY, fetch, pool_max=50)] == ["Cached"]
    assert executor.submitted == []


def test_stale_pool_is_served_and_refreshed_in_background():
    pools, cache, executor = make_pools()
    seed_pool(cache, "2026-01-15T00:00:00Z", [place("Old", 4.6, 300)])
    calls = []

    def fetch():
        calls.append(1)
        return [place("New", 4.9, 900)]

    served = pools.get_pool(POOL_KEY, fetch, pool_max=50, query_count=2, zip="94110", category="dining")
    assert [p.name for p in served] == ["Old"]
    assert calls == []
    assert len(executor.submitted) == 1

    executor.run_all()
    assert calls == [1]
    refreshed = cache.get_place_pool(POOL_KEY)
    assert [p.name for p in refreshed.items] == ["New"]
    assert refreshed.fetched_at.startswith("2026-02-01")


def test_concurrent_stale_reads_schedule_one_refresh():
    pools, cache, executor = make_pools()
    seed_pool(cache, "2026-01-15T00:00:00Z", [place("Old", 4.6, 300)])

    for _ in range(3):
        pools.get_pool(POOL_KEY, lambda: [place("New", 4.9, 900)], pool_max=50)
    assert len(executor.submitted) == 1

    executor.run_all()
    seed_pool(cache, "2026-01-15T00:00:00Z", [place("Old", 4.6, 300)])
    pools.get_pool(POOL_KEY, lambda: [], pool_max=50)
    assert len(executor.submitted) == 1


def test_background_refresh_failure_is_logged_and_pool_kept(caplog):
    pools, cache, executor = make_pools()
    seed_pool(cache, "2026-01-15T00:00:00Z", [place("Old", 4.6, 300)])

    def fetch():
        raise ProviderError("quota exceeded")

    pools.get_pool(POOL_KEY, fetch, pool_max=50, zip="94110", category="dining")
    with caplog.at_level(logging.WARNING):
        executor.run_all()
    assert any("Background pool refresh failed" in r.getMessage() for r in caplog.records)
    assert [p.name for p in cache.get_place_pool(POOL_KEY).items] == ["Old"]


def test_synchronous_fetch_failure_propagates():
    pools, _, _ = make_pools()

    def fetch():
        raise ProviderError("network down")

    with pytest.raises(ProviderError):
        pools.get_pool(POOL_KEY, fetch, pool_max=50)


def test_pool_is_deduped_and_truncated_to_pool_max():
    pools, cache, _ = make_pools()
    fetched = [place(f"P{i}", 4.5, 10 * (i + 1)) for i in range(5)] + [place("P4", 4.0, 1)]

    pool = pools.get_pool(POOL_KEY, lambda: fetched, pool_max=2)
    assert [p.name for p in pool] == ["P4", "P3"]
    assert pool[0].review_count == 50
    assert len(cache.get_place_pool(POOL_KEY).items) == 2


def test_empty_refresh_is_not_written():
    pools, cache, _ = make_pools()
    assert pools.get_pool(POOL_KEY, lambda: [], pool_max=50) == []
    assert cache.get_place_pool(POOL_KEY) is None
