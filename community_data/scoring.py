"""Composite ranking and duplicate merging for scored places."""
from __future__ import annotations

import math
import re
from typing import Dict, Iterable, List

from . import config
from .places import ScoredPlace

_DEDUPE_STRIP_RE = re.compile(r"[^a-z0-9|]+")


def rank_score(place: ScoredPlace) -> float:
    popularity = math.log10(max(place.review_count, 0) + 1) * 10
    distance_penalty = 0.0
    if place.distance_km is not None:
        distance_penalty = min(place.distance_km, config.DISTANCE_SCORE_CAP_KM) * config.DISTANCE_SCORE_WEIGHT
    return popularity + place.rating - distance_penalty


def rank_places(places: Iterable[ScoredPlace]) -> List[ScoredPlace]:
    return sorted(places, key=rank_score, reverse=True)


def dedupe_key(place: ScoredPlace) -> str:
    if place.place_id:
        return f"place:{place.place_id}"
    raw = f"{place.name}|{place.address}".lower()
    return _DEDUPE_STRIP_RE.sub("", raw)


def _union(first: List[str], second: List[str]) -> List[str]:
    merged = list(first)
    for value in second:
        if value not in merged:
            merged.append(value)
    return merged


def merge_places(existing: ScoredPlace, incoming: ScoredPlace) -> ScoredPlace:
    """Merge two records sharing a dedupe key into a new record."""
    existing_weight = existing.review_count + existing.rating
    incoming_weight = incoming.review_count + incoming.rating
    winner = incoming if incoming_weight > existing_weight else existing
    return ScoredPlace(
        name=winner.name or existing.name,
        rating=winner.rating,
        review_count=winner.review_count,
        address=winner.address or existing.address or incoming.address,
        category=existing.category or incoming.category,
        place_id=winner.place_id or existing.place_id or incoming.place_id,
        distance_km=winner.distance_km if winner.distance_km is not None else (
            existing.distance_km if existing.distance_km is not None else incoming.distance_km
        ),
        summary=existing.summary or incoming.summary,
        keywords=_union(existing.keywords, incoming.keywords),
        source_queries=_union(existing.source_queries, incoming.source_queries),
    )


def dedupe_places(places: Iterable[ScoredPlace]) -> List[ScoredPlace]:
    """Collapse records sharing a dedupe key, keeping first-seen order."""
    merged: Dict[str, ScoredPlace] = {}
    for place in places:
        key = dedupe_key(place)
        current = merged.get(key)
        merged[key] = place if current is None else merge_places(current, place)
    return list(merged.values())
