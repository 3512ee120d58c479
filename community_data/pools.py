"""Persistent per-category place pools with month-based staleness.

A pool is the whole deduplicated candidate set found so far for a zip and
category (optionally an audience and service-area list). Requests sample a
display-sized subset from it. Fresh pools are served as-is, stale pools are
served while a background refresh replaces them, and missing pools are
fetched synchronously.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, List, Optional, Set

from . import config, keys
from .places import ScoredPlace
from .sampling import WeightedSampler
from .scoring import dedupe_places, rank_places
from .store import CachedPlacePool, CommunityCache

logger = logging.getLogger(__name__)

FetchPlaces = Callable[[], List[ScoredPlace]]


class PlacePoolCache:
    def __init__(
        self,
        cache: CommunityCache,
        sampler: WeightedSampler,
        executor: Optional[Executor] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.cache = cache
        self.sampler = sampler
        self.now = now or keys.utc_now
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.REFRESH_MAX_WORKERS, thread_name_prefix="pool-refresh"
        )
        self._inflight: Set[str] = set()
        self._inflight_lock = threading.Lock()

    def close(self, wait: bool = True) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=wait)

    def build_pool(
        self,
        places: List[ScoredPlace],
        pool_max: int,
        query_count: int,
    ) -> CachedPlacePool:
        ranked = rank_places(dedupe_places(places))
        if pool_max > 0:
            ranked = ranked[:pool_max]
        return CachedPlacePool(
            items=ranked,
            fetched_at=self.now().replace(microsecond=0).isoformat(),
            query_count=query_count,
        )

    def refresh(
        self,
        pool_key: str,
        fetch: FetchPlaces,
        pool_max: int,
        query_count: int,
        **context: Any,
    ) -> CachedPlacePool:
        pool = self.build_pool(fetch(), pool_max, query_count)
        if pool.items:
            self.cache.set_place_pool(pool_key, pool, **context)
        logger.info("Refreshed place pool %s with %s places", pool_key, len(pool.items))
        return pool

    def schedule_refresh(
        self,
        pool_key: str,
        fetch: FetchPlaces,
        pool_max: int,
        query_count: int,
        **context: Any,
    ) -> Optional[Future]:
        """Submit a background refresh unless one is already running for the key."""
        with self._inflight_lock:
            if pool_key in self._inflight:
                logger.debug("Refresh already in flight for %s", pool_key)
                return None
            self._inflight.add(pool_key)

        def run() -> None:
            try:
                self.refresh(pool_key, fetch, pool_max, query_count, **context)
            except Exception as exc:
                logger.warning(
                    "Background pool refresh failed (key=%s zip=%s category=%s audience=%s): %s",
                    pool_key,
                    context.get("zip"),
                    context.get("category"),
                    context.get("audience"),
                    exc,
                )
            finally:
                with self._inflight_lock:
                    self._inflight.discard(pool_key)

        try:
            return self.executor.submit(run)
        except RuntimeError as exc:
            # executor already shut down
            with self._inflight_lock:
                self._inflight.discard(pool_key)
            logger.warning("Could not schedule pool refresh for %s: %s", pool_key, exc)
            return None

    def get_pool(
        self,
        pool_key: str,
        fetch: FetchPlaces,
        pool_max: int,
        query_count: int = 0,
        **context: Any,
    ) -> List[ScoredPlace]:
        cached = self.cache.get_place_pool(pool_key, **context)
        if cached is not None and cached.items:
            if keys.is_pool_stale(cached.fetched_at, self.now()):
                logger.info("Serving stale place pool %s (fetched_at=%s)", pool_key, cached.fetched_at)
                self.schedule_refresh(pool_key, fetch, pool_max, query_count, **context)
            return cached.items
        return self.refresh(pool_key, fetch, pool_max, query_count, **context).items

    def get_pooled_places(
        self,
        pool_key: str,
        fetch: FetchPlaces,
        display_limit: int,
        pool_max: int,
        query_count: int = 0,
        sampler: Optional[WeightedSampler] = None,
        **context: Any,
    ) -> List[ScoredPlace]:
        pool = self.get_pool(pool_key, fetch, pool_max, query_count, **context)
        return (sampler or self.sampler).sample_from_pool(pool, display_limit)
