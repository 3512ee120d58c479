"""Search query composition: regional packs, seasons and seasonal rotation."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from . import config
from .geo import CityRecord
from .sampling import WeightedSampler

logger = logging.getLogger(__name__)

MONTH_KEYS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]


def month_key(now: datetime) -> str:
    return MONTH_KEYS[now.month - 1]


def normalize_query_key(query: str) -> str:
    return " ".join(query.lower().split())


def merge_unique_queries(base: Sequence[str], additions: Sequence[str]) -> List[str]:
    merged: List[str] = []
    seen: Set[str] = set()
    for query in list(base) + list(additions):
        cleaned = (query or "").strip()
        key = normalize_query_key(cleaned)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(cleaned)
    return merged


def derive_geo_pack_keys(state: str, lat: float) -> List[str]:
    keys: List[str] = []
    state = (state or "").upper()
    for region, states in config.STATE_REGION_GROUPS.items():
        if state in states:
            keys.append(region)
            break
    if lat <= config.WARM_LATITUDE_MAX:
        keys.append("warm")
    elif lat >= config.COLD_LATITUDE_MIN:
        keys.append("cold")
    return keys


def derive_season(lat: float, month: int) -> str:
    """Season for a 1-based month, adjusted for the latitude band."""
    if lat <= config.SOUTHERN_LATITUDE_MAX:
        if month in (12, 1, 2):
            return "fall"
        if month in (3, 4, 5):
            return "spring"
        if month in (6, 7, 8, 9):
            return "summer"
        return "fall"
    if month in (12, 1, 2):
        return "winter"
    if month in (3, 4, 5):
        return "spring"
    if month in (6, 7, 8):
        return "summer"
    return "fall"


def geo_queries_for(location: CityRecord, category: str) -> List[str]:
    packs = config.GEO_QUERY_PACKS.get(category)
    if not packs:
        return []
    queries: List[str] = []
    for key in derive_geo_pack_keys(location.state_id, location.lat):
        queries.extend(packs.get(key, []))
    return queries


def season_queries_for(location: CityRecord, category: str, now: datetime) -> List[str]:
    packs = config.SEASON_QUERY_PACKS.get(category)
    if not packs:
        return []
    return list(packs.get(derive_season(location.lat, now.month), []))


def build_localized_queries(
    location: CityRecord,
    category: str,
    base_queries: Sequence[str],
    seasonal_queries: Sequence[str] = (),
) -> List[str]:
    """Base queries, then seasonal phrasing, then regional variants."""
    queries = merge_unique_queries(base_queries, seasonal_queries)
    return merge_unique_queries(queries, geo_queries_for(location, category))


def ensure_target_count(queries: Sequence[str], fallback: Sequence[str], target: int) -> List[str]:
    raw = merge_unique_queries(queries, [])
    if not raw:
        return merge_unique_queries(fallback[:target], [])
    if len(raw) < target:
        return merge_unique_queries(raw, fallback[: target - len(raw)])
    return raw


def get_query_overrides(category: str, query: str) -> Optional[Dict[str, float]]:
    if category == "education" and "library" in query.lower():
        return {"min_reviews": 10}
    return None


def _seeded_shuffle(values: Sequence[str], seed: str) -> List[str]:
    digest = hashlib.sha1(seed.encode("utf-8")).hexdigest()
    result = list(values)
    seed_index = 0
    for i in range(len(result) - 1, 0, -1):
        chunk = digest[seed_index : seed_index + 8]
        if len(chunk) < 8:
            chunk = hashlib.sha1(f"{seed}:{i}".encode("utf-8")).hexdigest()[:8]
        seed_index = (seed_index + 8) % len(digest)
        j = int(chunk, 16) % (i + 1)
        result[i], result[j] = result[j], result[i]
    return result


def pick_seasonal_categories(seed: str, categories: Sequence[str], count: int) -> List[str]:
    """Stable subset of categories allowed to use seasonal phrasing for a seed."""
    if len(categories) <= count:
        return list(categories)
    return _seeded_shuffle(categories, seed)[:count]


def estimate_search_calls(
    category: str,
    queries: Sequence[str],
    seasonal_queries: Set[str],
    anchor_count: int,
) -> int:
    if not queries:
        return 0
    base_anchors = 1 if category in config.LOW_PRIORITY_ANCHOR_CATEGORIES else anchor_count
    total = 0
    for query in queries:
        total += 1 if normalize_query_key(query) in seasonal_queries else base_anchors
    return total


def estimate_cost_usd(search_calls: int, details_calls: int) -> float:
    cost = search_calls * config.SEARCH_CALL_COST_USD + details_calls * config.DETAILS_CALL_COST_USD
    return round(cost, 4)


@dataclass
class CategoryQueryPlan:
    category: str
    queries: List[str]
    # normalized keys of queries that carry seasonal phrasing
    seasonal_queries: Set[str] = field(default_factory=set)
    max_per_query: int = 10


class QueryComposer:
    def __init__(self, sampler: WeightedSampler, categories: Optional[config.CategoryTable] = None) -> None:
        self.sampler = sampler
        self.categories = categories or config.DEFAULT_CATEGORIES

    def pick_seasonal_query(
        self,
        location: CityRecord,
        category: str,
        now: datetime,
        used_headers: Set[str],
    ) -> Optional[str]:
        candidates = [
            query
            for query in season_queries_for(location, category, now)
            if normalize_query_key(query) not in used_headers
        ]
        picked = self.sampler.sample_random(candidates, 1)
        if not picked:
            return None
        used_headers.add(normalize_query_key(picked[0]))
        return picked[0]

    def build_category_plan(
        self,
        location: CityRecord,
        category: str,
        base_queries: Sequence[str],
        now: datetime,
        seasonal_allowed: bool = False,
        used_headers: Optional[Set[str]] = None,
        max_per_query: Optional[int] = None,
    ) -> CategoryQueryPlan:
        category_config = self.categories.get(category)
        base = ensure_target_count(
            base_queries,
            list(category_config.fallback_queries),
            category_config.target_query_count,
        )
        seasonal: List[str] = []
        if seasonal_allowed:
            picked = self.pick_seasonal_query(
                location, category, now, used_headers if used_headers is not None else set()
            )
            if picked:
                seasonal.append(picked)
        queries = build_localized_queries(location, category, base, seasonal)
        logger.debug("Query plan for %s: %s", category, queries)
        return CategoryQueryPlan(
            category=category,
            queries=queries,
            seasonal_queries={normalize_query_key(q) for q in seasonal},
            max_per_query=max_per_query if max_per_query is not None else category_config.max_per_query,
        )
