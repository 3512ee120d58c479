"""Multi-anchor place search fan-out."""
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from . import config
from .geo import CityRecord, DistanceCache, ServiceAreaDistanceCache, get_search_anchors
from .places import ScoredPlace, to_scored_places
from .queries import get_query_overrides, normalize_query_key

logger = logging.getLogger(__name__)


class PlaceSearchProvider(Protocol):
    def search_text(
        self, query: str, lat: float, lng: float, max_results: int, radius_m: int = ...
    ) -> List[Dict[str, Any]]:
        ...

    def search_nearby(
        self,
        lat: float,
        lng: float,
        included_types: Sequence[str],
        max_results: int,
        radius_m: int = ...,
    ) -> List[Dict[str, Any]]:
        ...


def per_anchor_max(max_results: int, anchor_count: int) -> int:
    return max(3, math.ceil(max_results / max(1, anchor_count)))


class PlaceSearcher:
    def __init__(
        self,
        provider: PlaceSearchProvider,
        max_workers: int = config.SEARCH_MAX_WORKERS,
        radius_m: int = config.DEFAULT_SEARCH_RADIUS_METERS,
        categories: Optional[config.CategoryTable] = None,
    ) -> None:
        self.provider = provider
        self.max_workers = max(1, max_workers)
        self.radius_m = radius_m
        self.categories = categories or config.DEFAULT_CATEGORIES

    def anchors_for(
        self,
        location: CityRecord,
        category: str,
        query: str,
        seasonal_queries: Set[str],
    ) -> List[Tuple[float, float]]:
        anchors = get_search_anchors(location, config.SEARCH_ANCHOR_OFFSETS)
        single = (
            category in config.LOW_PRIORITY_ANCHOR_CATEGORIES
            or normalize_query_key(query) in seasonal_queries
        )
        return anchors[:1] if single else anchors

    def fetch_scored_places(
        self,
        location: CityRecord,
        category: str,
        queries: Sequence[str],
        max_per_query: int,
        distance_cache: Optional[DistanceCache] = None,
        service_area_cache: Optional[ServiceAreaDistanceCache] = None,
        seasonal_queries: Optional[Set[str]] = None,
        apply_overrides: bool = True,
    ) -> List[ScoredPlace]:
        """Search every query at its anchors and convert results in query order."""
        seasonal_queries = seasonal_queries or set()
        tasks: List[Tuple[int, int, str, float, float, int]] = []
        anchor_counts: List[int] = []
        for q_index, query in enumerate(queries):
            anchors = self.anchors_for(location, category, query, seasonal_queries)
            anchor_counts.append(len(anchors))
            limit = per_anchor_max(max_per_query, len(anchors))
            for a_index, (lat, lng) in enumerate(anchors):
                tasks.append((q_index, a_index, query, lat, lng, limit))
        if not tasks:
            return []

        raw_by_task: Dict[Tuple[int, int], List[Dict[str, Any]]] = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(tasks))) as ex:
            futures = {
                ex.submit(self.provider.search_text, query, lat, lng, limit, self.radius_m): (q_index, a_index)
                for q_index, a_index, query, lat, lng, limit in tasks
            }
            for fut in as_completed(futures):
                raw_by_task[futures[fut]] = fut.result() or []

        scored: List[ScoredPlace] = []
        for q_index, query in enumerate(queries):
            raw: List[Dict[str, Any]] = []
            for a_index in range(anchor_counts[q_index]):
                raw.extend(raw_by_task.get((q_index, a_index), []))
            overrides = get_query_overrides(category, query) if apply_overrides else None
            is_seasonal = normalize_query_key(query) in seasonal_queries
            scored.extend(
                to_scored_places(
                    raw,
                    category,
                    distance_cache,
                    service_area_cache,
                    overrides=overrides,
                    source_query=query if is_seasonal else None,
                    category_config=self.categories.get(category),
                )
            )
        logger.debug("Fetched %s scored places for %s from %s queries", len(scored), category, len(queries))
        return scored
