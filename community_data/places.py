"""Scored place records and conversion from raw provider results."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .geo import DistanceCache, ServiceAreaDistanceCache


@dataclass
class ScoredPlace:
    name: str
    rating: float
    review_count: int
    address: str
    category: str
    place_id: Optional[str] = None
    distance_km: Optional[float] = None
    summary: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    source_queries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "address": self.address,
            "category": self.category,
        }
        if self.place_id:
            data["placeId"] = self.place_id
        if self.distance_km is not None:
            data["distanceKm"] = self.distance_km
        if self.summary:
            data["summary"] = self.summary
        if self.keywords:
            data["keywords"] = list(self.keywords)
        if self.source_queries:
            data["sourceQueries"] = list(self.source_queries)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoredPlace":
        return cls(
            name=str(data.get("name") or ""),
            rating=safe_float(data.get("rating")),
            review_count=safe_int(data.get("reviewCount")),
            address=str(data.get("address") or ""),
            category=str(data.get("category") or ""),
            place_id=data.get("placeId") or None,
            distance_km=data.get("distanceKm"),
            summary=data.get("summary") or None,
            keywords=list(data.get("keywords") or []),
            source_queries=list(data.get("sourceQueries") or []),
        )


def safe_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def safe_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def is_neighborhood_category(category: str) -> bool:
    return category == "neighborhoods" or category.startswith("neighborhoods_")


def is_rejected_neighborhood(name: str) -> bool:
    lowered = name.lower()
    return any(term in lowered for term in config.NEIGHBORHOOD_REJECT_TERMS)


def is_chain_name(name: str) -> bool:
    lowered = name.lower()
    return any(chain in lowered for chain in config.CHAIN_NAME_BLACKLIST)


def place_distance_km(
    place: Dict[str, Any],
    distance_cache: Optional[DistanceCache],
    service_area_cache: Optional[ServiceAreaDistanceCache] = None,
) -> Optional[float]:
    location = place.get("location") or {}
    lat = location.get("latitude")
    lng = location.get("longitude")
    if lat is None or lng is None:
        return None
    distances = []
    if distance_cache is not None:
        distances.append(distance_cache.get_distance_km(lat, lng))
    if service_area_cache is not None:
        service_distance = service_area_cache.get_distance_km(lat, lng)
        if service_distance is not None:
            distances.append(service_distance)
    if not distances:
        return None
    return min(distances)


def to_scored_places(
    places: Iterable[Dict[str, Any]],
    category: str,
    distance_cache: Optional[DistanceCache] = None,
    service_area_cache: Optional[ServiceAreaDistanceCache] = None,
    overrides: Optional[Dict[str, Any]] = None,
    source_query: Optional[str] = None,
    category_config: Optional[config.CategoryConfig] = None,
) -> List[ScoredPlace]:
    """Convert raw Places API results, dropping the ones that fail filters."""
    overrides = overrides or {}
    category_config = category_config or config.get_category_config(category)
    min_rating = overrides.get("min_rating", category_config.min_rating)
    min_reviews = overrides.get("min_reviews", category_config.min_reviews)
    neighborhood = is_neighborhood_category(category)
    chain_filtered = category in config.CHAIN_FILTER_CATEGORIES

    scored: List[ScoredPlace] = []
    for place in places:
        name = ((place.get("displayName") or {}).get("text") or "").strip()
        if not name:
            continue
        distance = place_distance_km(place, distance_cache, service_area_cache)
        if distance is not None and distance > config.MAX_PLACE_DISTANCE_KM:
            continue
        if neighborhood:
            if is_rejected_neighborhood(name):
                continue
        elif chain_filtered and is_chain_name(name):
            continue

        rating = safe_float(place.get("rating"))
        reviews = safe_int(place.get("userRatingCount"))
        if not neighborhood:
            if min_rating > 0 and rating < min_rating:
                continue
            if min_reviews > 0 and reviews < min_reviews:
                continue

        scored.append(
            ScoredPlace(
                name=name,
                rating=rating,
                review_count=reviews,
                address=(place.get("formattedAddress") or "").strip(),
                category=category,
                place_id=place.get("id") or None,
                distance_km=distance,
                source_queries=[source_query] if source_query else [],
            )
        )
    return scored
