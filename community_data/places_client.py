"""Places API client: text search, nearby search and place details."""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Sequence

import requests

from . import config
from .http import HttpClient, ProviderError, RequestMetrics


def build_text_search_body(
    query: str,
    lat: float,
    lng: float,
    max_results: int,
    radius_m: int = config.DEFAULT_SEARCH_RADIUS_METERS,
) -> Dict[str, Any]:
    return {
        "textQuery": query,
        "maxResultCount": max(1, min(int(max_results), 20)),
        "locationBias": {
            "circle": {
                "center": {"latitude": lat, "longitude": lng},
                "radius": float(radius_m),
            }
        },
    }


def build_nearby_search_body(
    lat: float,
    lng: float,
    included_types: Sequence[str],
    max_results: int,
    radius_m: int = config.DEFAULT_SEARCH_RADIUS_METERS,
) -> Dict[str, Any]:
    return {
        "includedTypes": sorted(included_types),
        "maxResultCount": max(1, min(int(max_results), 20)),
        "locationRestriction": {
            "circle": {
                "center": {"latitude": lat, "longitude": lng},
                "radius": float(radius_m),
            }
        },
    }


def parse_places_response(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    places = payload.get("places") or []
    return [place for place in places if isinstance(place, dict)]


class GooglePlacesClient:
    """Search and details provider; identical requests within a run hit memory."""

    def __init__(self, http_client: HttpClient, metrics: Optional[RequestMetrics] = None) -> None:
        self.http = http_client
        self.metrics = metrics or RequestMetrics()
        self._memory_cache: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _remembered(self, key: str, kind: str) -> Optional[Any]:
        with self._lock:
            if key not in self._memory_cache:
                return None
            cached = self._memory_cache[key]
        self.metrics.inc_dedup_skip(kind)
        return cached

    def _remember(self, key: str, value: Any) -> None:
        with self._lock:
            self._memory_cache[key] = value

    def _call(self, kind: str, send) -> Dict[str, Any]:
        self.metrics.inc_network(kind)
        try:
            return send()
        except (requests.RequestException, ValueError) as exc:
            raise ProviderError(f"Places {kind} request failed: {exc}") from exc

    def search_text(
        self,
        query: str,
        lat: float,
        lng: float,
        max_results: int,
        radius_m: int = config.DEFAULT_SEARCH_RADIUS_METERS,
    ) -> List[Dict[str, Any]]:
        key = f"search:{query}:{lat:.4f}:{lng:.4f}:{max_results}:{radius_m}"
        cached = self._remembered(key, "search")
        if cached is not None:
            return cached
        body = build_text_search_body(query, lat, lng, max_results, radius_m)
        payload = self._call(
            "search",
            lambda: self.http.post_json(config.PLACES_TEXT_SEARCH_URL, body, config.PLACES_FIELD_MASK),
        )
        places = parse_places_response(payload)
        self._remember(key, places)
        return places

    def search_nearby(
        self,
        lat: float,
        lng: float,
        included_types: Sequence[str],
        max_results: int,
        radius_m: int = config.DEFAULT_SEARCH_RADIUS_METERS,
    ) -> List[Dict[str, Any]]:
        types_key = ",".join(sorted(included_types))
        key = f"nearby:{types_key}:{lat:.4f}:{lng:.4f}:{max_results}:{radius_m}"
        cached = self._remembered(key, "search")
        if cached is not None:
            return cached
        body = build_nearby_search_body(lat, lng, included_types, max_results, radius_m)
        payload = self._call(
            "search",
            lambda: self.http.post_json(config.PLACES_NEARBY_SEARCH_URL, body, config.PLACES_FIELD_MASK),
        )
        places = parse_places_response(payload)
        self._remember(key, places)
        return places

    def get_details(self, place_id: str) -> Optional[Dict[str, Any]]:
        key = f"details:{place_id}"
        cached = self._remembered(key, "details")
        if cached is not None:
            return cached
        url = config.PLACE_DETAILS_URL_TEMPLATE.format(place_id=place_id)
        payload = self._call(
            "details",
            lambda: self.http.get_json(url, config.PLACE_DETAILS_FIELD_MASK),
        )
        details = payload or None
        # empty payloads are retried on the next lookup
        if details is not None:
            self._remember(key, details)
        return details
