"""Community data assembly: base lists, neighborhoods, seasonal sections and audience views."""
from __future__ import annotations

import logging
import random
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from . import config, keys
from .audience import AudienceDeltaBuilder, neighborhood_field_for, normalize_audience_segment
from .cache import KeyValueCache
from .city_description import BaseCityDescriptionClient
from .details import PlaceDetailsHydrator, PlaceDetailsProvider
from .geo import (
    CityRecord,
    DistanceCache,
    GeoDataset,
    ServiceAreaDistanceCache,
    get_search_anchors,
    resolve_service_area_centers,
)
from .http import ProviderError
from .lists import (
    NONE_FOUND,
    apply_audience_delta,
    build_neighborhood_detail_list,
    build_seasonal_query_sections,
    format_place_list,
    get_audience_skip_categories,
    trim_community_data_lists,
    trim_list,
)
from .places import ScoredPlace
from .pools import PlacePoolCache
from .queries import (
    CategoryQueryPlan,
    QueryComposer,
    estimate_cost_usd,
    estimate_search_calls,
    month_key,
    pick_seasonal_categories,
)
from .sampling import WeightedSampler
from .scoring import dedupe_places
from .search import PlaceSearchProvider, PlaceSearcher
from .store import CommunityCache

logger = logging.getLogger(__name__)

NEIGHBORHOOD_FIELDS = {
    "neighborhoods_general": "neighborhoods_list",
    "neighborhoods_family": "neighborhoods_family_list",
    "neighborhoods_senior": "neighborhoods_senior_list",
}


class CommunityDataAssembler:
    def __init__(
        self,
        dataset: GeoDataset,
        search_provider: PlaceSearchProvider,
        details_provider: Optional[PlaceDetailsProvider] = None,
        cache: Optional[KeyValueCache] = None,
        description_provider: Optional[BaseCityDescriptionClient] = None,
        rng: Optional[random.Random] = None,
        now: Optional[Callable[[], datetime]] = None,
        refresh_executor: Optional[Executor] = None,
        fetch_workers: int = config.FETCH_MAX_WORKERS,
        categories: Optional[config.CategoryTable] = None,
    ) -> None:
        self.dataset = dataset
        self.categories = categories or config.DEFAULT_CATEGORIES
        self.now = now or keys.utc_now
        self.cache = CommunityCache(cache, self.now)
        self.sampler = WeightedSampler(rng)
        self.composer = QueryComposer(self.sampler, self.categories)
        self.searcher = PlaceSearcher(search_provider, categories=self.categories)
        self.pools = PlacePoolCache(self.cache, self.sampler, refresh_executor, self.now)
        self.hydrator = PlaceDetailsHydrator(details_provider, self.cache)
        self.description_provider = description_provider
        self.fetch_workers = max(1, fetch_workers)
        self.audience_builder = AudienceDeltaBuilder(
            self.searcher, self.pools, self.hydrator, self.composer, self.now, self.fetch_workers
        )

    def close(self, wait: bool = True) -> None:
        self.pools.close(wait=wait)

    # --- Location ---

    def resolve_location(
        self, zip_code: str, city: Optional[str] = None, state: Optional[str] = None
    ) -> Optional[CityRecord]:
        location = self.dataset.resolve_location(zip_code, city, state)
        if location is None:
            logger.warning("No location found for zip=%s city=%s state=%s", zip_code, city, state)
        return location

    def build_geo_context(
        self, location: CityRecord, service_areas: Optional[Sequence[str]] = None
    ) -> Tuple[DistanceCache, Optional[ServiceAreaDistanceCache]]:
        distance_cache = DistanceCache(location.lat, location.lng)
        centers = resolve_service_area_centers(service_areas, location, self.dataset.load())
        if service_areas and not centers:
            logger.info("No service areas resolved for %s; using origin distance only", list(service_areas))
        return distance_cache, ServiceAreaDistanceCache(centers) if centers else None

    # --- Base community data ---

    def _plan_categories(
        self,
        zip_code: str,
        location: CityRecord,
        categories: Sequence[str],
        now: datetime,
    ) -> List[CategoryQueryPlan]:
        seasonal_categories = set(
            pick_seasonal_categories(
                f"{zip_code}:{month_key(now)}:base",
                self.categories.base_categories(),
                config.SEASONAL_CATEGORY_LIMIT,
            )
        )
        logger.info(
            "Selected seasonal categories for base refresh (zip=%s month=%s): %s",
            zip_code,
            month_key(now),
            sorted(seasonal_categories),
        )
        used_headers: Set[str] = set()
        return [
            self.composer.build_category_plan(
                location,
                category,
                self.categories.fallback_queries(category),
                now,
                seasonal_allowed=category in seasonal_categories,
                used_headers=used_headers,
            )
            for category in categories
        ]

    def _fetch_category(
        self,
        zip_code: str,
        location: CityRecord,
        plan: CategoryQueryPlan,
        distance_cache: DistanceCache,
        service_area_cache: Optional[ServiceAreaDistanceCache],
        service_areas: Optional[Sequence[str]],
        city: Optional[str],
        state: Optional[str],
        sampler: Optional[WeightedSampler] = None,
    ) -> List[ScoredPlace]:
        category = plan.category
        return self.pools.get_pooled_places(
            keys.pool_key(zip_code, category, None, service_areas, city, state),
            lambda: self.searcher.fetch_scored_places(
                location,
                category,
                plan.queries,
                plan.max_per_query,
                distance_cache,
                service_area_cache,
                plan.seasonal_queries,
            ),
            display_limit=self.categories.display_limit(category),
            pool_max=self.categories.pool_max(category),
            query_count=len(plan.queries),
            sampler=sampler,
            zip=zip_code,
            category=category,
        )

    def _fetch_neighborhoods(
        self,
        location: CityRecord,
        entry: Dict[str, Any],
        distance_cache: DistanceCache,
        service_area_cache: Optional[ServiceAreaDistanceCache],
    ) -> List[ScoredPlace]:
        places = self.searcher.fetch_scored_places(
            location, entry["key"], [entry["query"]], entry["max"], distance_cache, service_area_cache
        )
        return dedupe_places(places)

    def _fetch_grouped(
        self,
        zip_code: str,
        location: CityRecord,
        plans: Sequence[CategoryQueryPlan],
        neighborhoods: Sequence[Dict[str, Any]],
        distance_cache: DistanceCache,
        service_area_cache: Optional[ServiceAreaDistanceCache],
        service_areas: Optional[Sequence[str]],
        city: Optional[str],
        state: Optional[str],
    ) -> Tuple[Dict[str, List[ScoredPlace]], Set[str]]:
        grouped: Dict[str, List[ScoredPlace]] = {}
        failed: Set[str] = set()
        total = len(plans) + len(neighborhoods)
        if total == 0:
            return grouped, failed
        # per-category generators, seeded in sorted order before any worker starts
        samplers = self.sampler.fork(plan.category for plan in plans)
        with ThreadPoolExecutor(max_workers=min(self.fetch_workers, total)) as ex:
            futures = {}
            for plan in plans:
                fut = ex.submit(
                    self._fetch_category,
                    zip_code,
                    location,
                    plan,
                    distance_cache,
                    service_area_cache,
                    service_areas,
                    city,
                    state,
                    samplers[plan.category],
                )
                futures[fut] = plan.category
            for entry in neighborhoods:
                fut = ex.submit(self._fetch_neighborhoods, location, entry, distance_cache, service_area_cache)
                futures[fut] = entry["key"]
            for fut in as_completed(futures):
                key = futures[fut]
                try:
                    grouped[key] = fut.result()
                except ProviderError as exc:
                    logger.warning("Place fetch failed (zip=%s category=%s): %s", zip_code, key, exc)
                    grouped[key] = []
                    failed.add(key)
        return grouped, failed

    def _log_estimate(
        self,
        zip_code: str,
        location: CityRecord,
        plans: Sequence[CategoryQueryPlan],
        neighborhood_count: int,
    ) -> None:
        anchor_count = len(get_search_anchors(location, config.SEARCH_ANCHOR_OFFSETS))
        search_calls = neighborhood_count * anchor_count + sum(
            estimate_search_calls(p.category, p.queries, p.seasonal_queries, anchor_count) for p in plans
        )
        details_calls = sum(self.categories.display_limit(p.category) for p in plans)
        logger.info(
            "Community base refresh estimated calls (zip=%s): search=%s details=%s cost_usd=%s",
            zip_code,
            search_calls,
            details_calls,
            estimate_cost_usd(search_calls, details_calls),
        )

    def get_community_data(
        self,
        zip_code: str,
        service_areas: Optional[Sequence[str]] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        skip_categories: Optional[Set[str]] = None,
        write_cache: bool = True,
    ) -> Optional[Dict[str, Any]]:
        if not zip_code:
            return None
        cached = self.cache.get_community_data(zip_code, city, state)
        if cached:
            return cached

        skip = set(skip_categories or ())
        location = self.resolve_location(zip_code, city, state)
        if location is None:
            return None
        distance_cache, service_area_cache = self.build_geo_context(location, service_areas)
        now = self.now()

        cached_lists: Dict[str, str] = {}
        to_fetch: List[str] = []
        for category in self.categories.base_categories():
            if category in skip:
                continue
            cached_list = self.cache.get_category_list(zip_code, category, city, state)
            if cached_list:
                cached_lists[category] = cached_list
            else:
                to_fetch.append(category)

        cached_neighborhoods: Dict[str, str] = {}
        neighborhoods_to_fetch: List[Dict[str, Any]] = []
        for entry in config.NEIGHBORHOOD_QUERIES:
            cached_list = self.cache.get_category_list(zip_code, entry["key"], city, state)
            if cached_list:
                cached_neighborhoods[entry["key"]] = cached_list
            else:
                neighborhoods_to_fetch.append(entry)

        plans = self._plan_categories(zip_code, location, to_fetch, now) if to_fetch else []
        if plans or neighborhoods_to_fetch:
            logger.info(
                "Community base categories (zip=%s): cached=%s fetching=%s skipped=%s",
                zip_code,
                sorted(cached_lists),
                to_fetch,
                sorted(skip),
            )
            self._log_estimate(zip_code, location, plans, len(neighborhoods_to_fetch))

        grouped, failed = self._fetch_grouped(
            zip_code,
            location,
            plans,
            neighborhoods_to_fetch,
            distance_cache,
            service_area_cache,
            service_areas,
            city,
            state,
        )

        lists: Dict[str, str] = dict(cached_lists)
        for category in to_fetch:
            hydrated = self.hydrator.hydrate(grouped.get(category, []))
            value = format_place_list(hydrated, self.categories.display_limit(category), True)
            self.cache.set_category_list(zip_code, category, value, city, state)
            lists[category] = value

        seasonal_sections = self.cache.get_seasonal_sections(zip_code, city, state)
        if seasonal_sections is None:
            fetched = {key: grouped.get(key, []) for key in to_fetch}
            seasonal_sections = build_seasonal_query_sections(fetched, self.sampler)
            self.cache.set_seasonal_sections(zip_code, seasonal_sections, city, state)

        neighborhood_lists: Dict[str, str] = dict(cached_neighborhoods)
        for entry in neighborhoods_to_fetch:
            value = build_neighborhood_detail_list(grouped.get(entry["key"], []), self.categories)
            self.cache.set_category_list(zip_code, entry["key"], value, city, state)
            neighborhood_lists[entry["key"]] = value

        data: Dict[str, Any] = {
            "city": location.city,
            "state": location.state_id,
            "zip_code": zip_code,
            "data_timestamp": now.isoformat(),
        }
        for key, field_name in NEIGHBORHOOD_FIELDS.items():
            data[field_name] = neighborhood_lists.get(key, NONE_FOUND)
        data["neighborhoods_luxury_list"] = data["neighborhoods_family_list"]
        data["neighborhoods_relocators_list"] = data["neighborhoods_list"]
        for category, field_name in config.CATEGORY_FIELD_MAP.items():
            data[field_name] = NONE_FOUND if category in skip else lists.get(category, NONE_FOUND)
        data["seasonal_geo_sections"] = seasonal_sections or {}

        if write_cache and not failed:
            self.cache.set_community_data(zip_code, data, city, state)
        elif failed:
            logger.warning("Not caching community data for zip=%s; failed categories: %s", zip_code, sorted(failed))
        return data

    # --- Audience view ---

    def get_audience_delta(
        self,
        zip_code: str,
        audience: str,
        service_areas: Optional[Sequence[str]] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> Dict[str, str]:
        cached = self.cache.get_audience_delta(zip_code, audience, service_areas, city, state)
        if cached is not None:
            return cached
        location = self.resolve_location(zip_code, city, state)
        if location is None:
            return {}
        distance_cache, service_area_cache = self.build_geo_context(location, service_areas)
        delta = self.audience_builder.build(
            zip_code,
            audience,
            location,
            distance_cache,
            service_area_cache,
            service_areas,
            city,
            state,
        )
        self.cache.set_audience_delta(zip_code, audience, delta, service_areas, city, state)
        return delta

    def get_community_data_for_audience(
        self,
        zip_code: str,
        audience: Optional[str],
        service_areas: Optional[Sequence[str]] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        normalized = normalize_audience_segment(audience)
        if not normalized:
            return self.get_community_data(zip_code, service_areas, city, state)

        delta = self.get_audience_delta(zip_code, normalized, service_areas, city, state)
        skip = get_audience_skip_categories(delta, self.categories)
        base = self.get_community_data(
            zip_code,
            service_areas,
            city,
            state,
            skip_categories=skip,
            write_cache=not skip,
        )
        if base is None:
            return None
        merged = trim_community_data_lists(
            apply_audience_delta(base, delta, self.categories) if delta else base, self.categories
        )
        merged["neighborhoods_list"] = trim_list(
            base.get(neighborhood_field_for(normalized)),
            self.categories.display_limit("neighborhoods"),
            True,
        )
        merged["audience_segment"] = normalized
        return merged

    # --- City description ---

    def get_city_description(self, city: str, state: str) -> Optional[Dict[str, Any]]:
        if not city or not state:
            return None
        cached = self.cache.get_city_description(city, state)
        if cached is not None:
            return cached
        if self.description_provider is None:
            return None
        result = self.description_provider.describe(city, state)
        if not result.description:
            return None
        payload = {"description": result.description, "model": result.model}
        self.cache.set_city_description(city, state, payload)
        return payload
