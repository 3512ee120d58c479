"""Audience segments and per-audience category augmentation."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from . import config, keys
from .details import PlaceDetailsHydrator
from .geo import CityRecord, DistanceCache, ServiceAreaDistanceCache, get_search_anchors
from .http import ProviderError
from .lists import format_place_list, has_real_entries
from .places import ScoredPlace
from .pools import PlacePoolCache
from .queries import (
    CategoryQueryPlan,
    QueryComposer,
    estimate_cost_usd,
    estimate_search_calls,
    merge_unique_queries,
    month_key,
    pick_seasonal_categories,
)
from .sampling import WeightedSampler
from .scoring import dedupe_places
from .search import PlaceSearcher

logger = logging.getLogger(__name__)


def normalize_audience_segment(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    if key in config.AUDIENCE_SEGMENTS:
        return key
    return config.AUDIENCE_SEGMENT_ALIASES.get(key)


def neighborhood_field_for(audience: Optional[str]) -> str:
    normalized = normalize_audience_segment(audience)
    return config.AUDIENCE_NEIGHBORHOOD_FIELDS.get(normalized or "", "neighborhoods_list")


def combine_audience_queries(audience_queries: Sequence[str], fallback: Sequence[str], target: int) -> List[str]:
    """Audience queries topped up with fallback queries to reach the target count."""
    if not audience_queries:
        return list(fallback[:target])
    if len(audience_queries) < target:
        return merge_unique_queries(audience_queries, fallback[: target - len(audience_queries)])
    return list(audience_queries)


class AudienceDeltaBuilder:
    def __init__(
        self,
        searcher: PlaceSearcher,
        pools: PlacePoolCache,
        hydrator: PlaceDetailsHydrator,
        composer: QueryComposer,
        now: Callable[[], datetime] = keys.utc_now,
        max_workers: int = config.FETCH_MAX_WORKERS,
    ) -> None:
        self.searcher = searcher
        self.pools = pools
        self.hydrator = hydrator
        self.composer = composer
        self.categories = composer.categories
        self.now = now
        self.max_workers = max(1, max_workers)

    def fetch_category_places(
        self,
        location: CityRecord,
        plan: CategoryQueryPlan,
        distance_cache: Optional[DistanceCache],
        service_area_cache: Optional[ServiceAreaDistanceCache],
    ) -> List[ScoredPlace]:
        """Primary audience results, with fallback results appended when too thin."""
        category = plan.category
        places = self.searcher.fetch_scored_places(
            location,
            category,
            plan.queries,
            plan.max_per_query,
            distance_cache,
            service_area_cache,
            plan.seasonal_queries,
            apply_overrides=False,
        )
        min_primary = self.categories.min_primary_results(category)
        fallback = self.categories.fallback_queries(category)
        primary_count = len(dedupe_places(places))
        if fallback and (min_primary <= 0 or primary_count < min_primary):
            logger.info(
                "Audience results for %s below minimum (%s < %s); running fallback queries",
                category,
                primary_count,
                min_primary,
            )
            places = places + self.searcher.fetch_scored_places(
                location,
                category,
                fallback,
                plan.max_per_query,
                distance_cache,
                service_area_cache,
                plan.seasonal_queries,
                apply_overrides=True,
            )
        return places

    def _build_plans(self, zip_code: str, audience: str, location: CityRecord) -> List[CategoryQueryPlan]:
        now = self.now()
        seasonal_categories = pick_seasonal_categories(
            f"{zip_code}:{audience}:{month_key(now)}:aud",
            config.AUDIENCE_AUGMENT_CATEGORIES,
            config.SEASONAL_CATEGORY_LIMIT,
        )
        logger.info(
            "Selected seasonal categories for audience delta (zip=%s audience=%s): %s",
            zip_code,
            audience,
            seasonal_categories,
        )
        used_headers: set = set()
        plans: List[CategoryQueryPlan] = []
        for category in config.AUDIENCE_AUGMENT_CATEGORIES:
            category_config = self.categories.get(category)
            combined = combine_audience_queries(
                config.get_audience_augment_queries(audience, category),
                list(category_config.fallback_queries),
                category_config.target_query_count,
            )
            plan = self.composer.build_category_plan(
                location,
                category,
                combined,
                now,
                seasonal_allowed=category in seasonal_categories,
                used_headers=used_headers,
                max_per_query=config.get_audience_augment_limit(category),
            )
            if plan.queries:
                plans.append(plan)
        return plans

    def _build_category(
        self,
        zip_code: str,
        audience: str,
        location: CityRecord,
        plan: CategoryQueryPlan,
        distance_cache: Optional[DistanceCache],
        service_area_cache: Optional[ServiceAreaDistanceCache],
        service_areas: Optional[Sequence[str]],
        city: Optional[str],
        state: Optional[str],
        sampler: Optional[WeightedSampler] = None,
    ) -> Optional[str]:
        category = plan.category
        sampled = self.pools.get_pooled_places(
            keys.pool_key(zip_code, category, audience, service_areas, city, state),
            lambda: self.fetch_category_places(location, plan, distance_cache, service_area_cache),
            display_limit=self.categories.display_limit(category),
            pool_max=self.categories.pool_max(category),
            query_count=len(plan.queries),
            sampler=sampler,
            zip=zip_code,
            category=category,
            audience=audience,
        )
        hydrated = self.hydrator.hydrate(sampled)
        formatted = format_place_list(hydrated, len(hydrated), True)
        return formatted if has_real_entries(formatted) else None

    def build(
        self,
        zip_code: str,
        audience: str,
        location: CityRecord,
        distance_cache: Optional[DistanceCache] = None,
        service_area_cache: Optional[ServiceAreaDistanceCache] = None,
        service_areas: Optional[Sequence[str]] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> Dict[str, str]:
        if audience not in config.AUDIENCE_AUGMENT_QUERIES:
            return {}
        plans = self._build_plans(zip_code, audience, location)
        anchor_count = len(get_search_anchors(location, config.SEARCH_ANCHOR_OFFSETS))
        search_calls = sum(
            estimate_search_calls(p.category, p.queries, p.seasonal_queries, anchor_count) for p in plans
        )
        details_calls = sum(self.categories.display_limit(p.category) for p in plans)
        logger.info(
            "Audience delta estimated calls (zip=%s audience=%s): search=%s details=%s cost_usd=%s",
            zip_code,
            audience,
            search_calls,
            details_calls,
            estimate_cost_usd(search_calls, details_calls),
        )

        delta: Dict[str, str] = {}
        if not plans:
            return delta
        samplers = self.composer.sampler.fork(plan.category for plan in plans)
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(plans))) as ex:
            futures = {
                ex.submit(
                    self._build_category,
                    zip_code,
                    audience,
                    location,
                    plan,
                    distance_cache,
                    service_area_cache,
                    service_areas,
                    city,
                    state,
                    samplers[plan.category],
                ): plan.category
                for plan in plans
            }
            for fut in as_completed(futures):
                category = futures[fut]
                try:
                    formatted = fut.result()
                except ProviderError as exc:
                    logger.warning(
                        "Audience category fetch failed (zip=%s audience=%s category=%s): %s",
                        zip_code,
                        audience,
                        category,
                        exc,
                    )
                    continue
                if formatted:
                    delta[category] = formatted
        # augment-category order
        return {c: delta[c] for c in config.AUDIENCE_AUGMENT_CATEGORIES if c in delta}
