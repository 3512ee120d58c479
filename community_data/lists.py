"""Formatting, trimming and merging of community text lists."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .places import ScoredPlace
from .queries import normalize_query_key
from .sampling import WeightedSampler
from .scoring import dedupe_places, rank_places

NONE_FOUND = config.NONE_FOUND_LINE
_SENTINEL_MARKER = "(none found)"

_BULLET_RE = re.compile(r"^-\s*")
_SUFFIX_RE = re.compile(r"\s+—\s+.*$")
_TRAILING_DETAIL_RE = re.compile(r"\s+—\s+[^—]+$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def format_place_line(place: ScoredPlace, include_keywords: bool = True) -> str:
    if place.summary:
        return f"- {place.name} — {place.summary}"
    if include_keywords and place.keywords:
        return f"- {place.name} — {', '.join(place.keywords)}"
    return f"- {place.name}"


def format_place_list(places: Sequence[ScoredPlace], max_items: int, include_keywords: bool = True) -> str:
    if not places or max_items <= 0:
        return NONE_FOUND
    ranked = rank_places(dedupe_places(places))[:max_items]
    return "\n".join(format_place_line(place, include_keywords) for place in ranked)


def build_neighborhood_detail_list(
    places: Sequence[ScoredPlace], categories: Optional[config.CategoryTable] = None
) -> str:
    if not places:
        return NONE_FOUND
    limit = (categories or config.DEFAULT_CATEGORIES).display_limit("neighborhoods")
    ranked = rank_places(dedupe_places(places))[:limit]
    lines = [f"- {place.name}" for place in ranked]
    return "\n".join(lines) if lines else NONE_FOUND


def is_sentinel_line(line: str) -> bool:
    return _SENTINEL_MARKER in line


def has_real_entries(value: Optional[str]) -> bool:
    return count_list_items(value) > 0


def parse_list_lines(value: Optional[str]) -> List[str]:
    if not value:
        return []
    lines = [line.strip() for line in value.split("\n")]
    return [line for line in lines if line and not is_sentinel_line(line)]


def count_list_items(value: Optional[str]) -> int:
    return len(parse_list_lines(value))


def trim_list(value: Optional[str], max_items: int, strip_keywords: bool = False) -> str:
    lines = parse_list_lines(value)[: max(0, max_items)]
    if not lines:
        return NONE_FOUND
    if strip_keywords:
        lines = [_TRAILING_DETAIL_RE.sub("", line) for line in lines]
    return "\n".join(lines)


def normalize_list_key(line: str) -> str:
    key = _BULLET_RE.sub("", line.strip())
    key = _SUFFIX_RE.sub("", key).lower()
    return _NON_ALNUM_RE.sub(" ", key).strip()


def merge_lists(delta: Optional[str], base: Optional[str], max_items: int) -> str:
    """Delta lines first, then base lines not already present, capped at max_items."""
    delta_lines = parse_list_lines(delta)
    if not delta_lines:
        return trim_list(base, max_items)

    merged: List[str] = []
    seen = set()
    for line in delta_lines + parse_list_lines(base):
        key = normalize_list_key(line)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(line)

    merged = merged[: max(0, max_items)]
    return "\n".join(merged) if merged else NONE_FOUND


def apply_audience_delta(
    data: Dict[str, Any], delta: Dict[str, str], categories: Optional[config.CategoryTable] = None
) -> Dict[str, Any]:
    categories = categories or config.DEFAULT_CATEGORIES
    updated = dict(data)
    for category, delta_list in delta.items():
        field_name = config.CATEGORY_FIELD_MAP.get(category)
        if not field_name or not has_real_entries(delta_list):
            continue
        base_list = data.get(field_name)
        if base_list is not None and not isinstance(base_list, str):
            continue
        updated[field_name] = merge_lists(
            delta_list, base_list, categories.display_limit(category)
        )
    return updated


def trim_community_data_lists(
    data: Dict[str, Any], categories: Optional[config.CategoryTable] = None
) -> Dict[str, Any]:
    categories = categories or config.DEFAULT_CATEGORIES
    trimmed = dict(data)
    trimmed["seasonal_geo_sections"] = data.get("seasonal_geo_sections") or {}
    trimmed["neighborhoods_list"] = trim_list(
        data.get("neighborhoods_list"), categories.display_limit("neighborhoods"), True
    )
    for category, field_name in config.CATEGORY_FIELD_MAP.items():
        trimmed[field_name] = trim_list(data.get(field_name), categories.display_limit(category))
    return trimmed


def get_audience_skip_categories(
    delta: Optional[Dict[str, str]], categories: Optional[config.CategoryTable] = None
) -> set:
    """Augment categories the delta already covers well enough to skip in the base fetch."""
    categories = categories or config.DEFAULT_CATEGORIES
    skip = set()
    if not delta:
        return skip
    for category in config.AUDIENCE_AUGMENT_CATEGORIES:
        value = delta.get(category)
        if not has_real_entries(value):
            continue
        min_primary = categories.min_primary_results(category)
        if min_primary <= 0 or count_list_items(value) >= min_primary:
            skip.add(category)
    return skip


def build_seasonal_query_sections(
    grouped: Dict[str, List[ScoredPlace]],
    sampler: WeightedSampler,
    max_per_query: int = config.SEASONAL_SECTION_MAX_PER_QUERY,
    max_headers: int = config.SEASONAL_SECTION_MAX_HEADERS,
) -> Dict[str, str]:
    """Group places by the seasonal query that found them, one section per query."""
    by_query: Dict[str, Dict[str, Any]] = {}
    for places in grouped.values():
        for place in places:
            for query in place.source_queries:
                key = normalize_query_key(query)
                entry = by_query.setdefault(key, {"query": query, "places": []})
                entry["places"].append(place)

    sections: Dict[str, str] = {}
    for entry in sampler.sample_random(list(by_query.values()), max_headers):
        rendered = format_place_list(entry["places"], max_per_query, True)
        if has_real_entries(rendered):
            sections[entry["query"]] = rendered
    return sections
