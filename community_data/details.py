"""Place-details hydration for sampled places."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol, Sequence

from . import config
from .http import ProviderError
from .places import ScoredPlace
from .store import CommunityCache, PlaceDetailsPayload

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 3

GENERIC_PLACE_TYPES = {
    "point_of_interest",
    "establishment",
    "food",
    "store",
    "premise",
    "political",
    "locality",
    "geocode",
    "health",
    "finance",
}


class PlaceDetailsProvider(Protocol):
    def get_details(self, place_id: str) -> Optional[Dict[str, Any]]:
        ...


def _humanize_type(value: str) -> str:
    return value.replace("_", " ").strip()


def extract_keywords(details: Dict[str, Any], max_keywords: int = MAX_KEYWORDS) -> List[str]:
    """Readable keywords from a details payload's primary type and types."""
    raw_types: List[str] = []
    primary = details.get("primaryType")
    if isinstance(primary, str) and primary:
        raw_types.append(primary)
    raw_types.extend(t for t in details.get("types") or [] if isinstance(t, str))

    keywords: List[str] = []
    for place_type in raw_types:
        if place_type in GENERIC_PLACE_TYPES:
            continue
        keyword = _humanize_type(place_type)
        if keyword and keyword not in keywords:
            keywords.append(keyword)
        if len(keywords) >= max_keywords:
            break
    return keywords


def details_to_payload(details: Optional[Dict[str, Any]]) -> PlaceDetailsPayload:
    if not details:
        return PlaceDetailsPayload()
    summary = ((details.get("generativeSummary") or {}).get("overview") or {}).get("text")
    if isinstance(summary, str) and summary.strip():
        return PlaceDetailsPayload(summary=summary.strip())
    return PlaceDetailsPayload(keywords=extract_keywords(details))


class PlaceDetailsHydrator:
    def __init__(
        self,
        provider: Optional[PlaceDetailsProvider],
        cache: CommunityCache,
        max_workers: int = config.SEARCH_MAX_WORKERS,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.max_workers = max(1, max_workers)

    def get_details_cached(self, place_id: str) -> PlaceDetailsPayload:
        cached = self.cache.get_place_details(place_id)
        if cached is not None:
            return cached
        if self.provider is None:
            return PlaceDetailsPayload()
        payload = details_to_payload(self.provider.get_details(place_id))
        self.cache.set_place_details(place_id, payload)
        return payload

    def _hydrate_one(self, place: ScoredPlace) -> ScoredPlace:
        if not place.place_id:
            return place
        try:
            payload = self.get_details_cached(place.place_id)
        except ProviderError as exc:
            logger.warning("Place details failed (place_id=%s category=%s): %s", place.place_id, place.category, exc)
            return place
        keywords = list(place.keywords)
        for keyword in payload.keywords:
            if keyword not in keywords:
                keywords.append(keyword)
        return replace(place, summary=place.summary or payload.summary, keywords=keywords)

    def hydrate(self, places: Sequence[ScoredPlace]) -> List[ScoredPlace]:
        if not places:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(places))) as ex:
            return list(ex.map(self._hydrate_one, places))
