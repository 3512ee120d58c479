"""Typed community cache access that degrades to no caching on failure."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import config, keys
from .cache import KeyValueCache
from .places import ScoredPlace

logger = logging.getLogger(__name__)


@dataclass
class CachedPlacePool:
    items: List[ScoredPlace]
    fetched_at: str
    query_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "fetched_at": self.fetched_at,
            "query_count": self.query_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedPlacePool":
        items = [ScoredPlace.from_dict(item) for item in data.get("items") or [] if isinstance(item, dict)]
        return cls(
            items=items,
            fetched_at=str(data.get("fetched_at") or ""),
            query_count=int(data.get("query_count") or 0),
        )


@dataclass
class PlaceDetailsPayload:
    summary: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"keywords": list(self.keywords)}
        if self.summary:
            data["summary"] = self.summary
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaceDetailsPayload":
        return cls(summary=data.get("summary") or None, keywords=list(data.get("keywords") or []))


class CommunityCache:
    """Wraps a KeyValueCache; a missing or failing backend means no caching."""

    def __init__(
        self,
        backend: Optional[KeyValueCache],
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.backend = backend
        self.now = now or keys.utc_now
        self._unavailable = False
        self._unavailable_lock = threading.Lock()
        if backend is None:
            logger.warning("No cache backend configured; community data will be refetched on every request")

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def _backend_failed(self, message: str, *args: Any) -> None:
        """Warn on the first failure of an outage; later failures go to debug."""
        with self._unavailable_lock:
            first = not self._unavailable
            self._unavailable = True
        if first:
            logger.warning(message + "; continuing without cache", *args)
        else:
            logger.debug(message, *args)

    def _backend_ok(self) -> None:
        if not self._unavailable:
            return
        with self._unavailable_lock:
            recovered = self._unavailable
            self._unavailable = False
        if recovered:
            logger.info("Cache backend reachable again")

    def _get(self, key: str, what: str, **context: Any) -> Optional[Any]:
        if self.backend is None:
            return None
        try:
            value = self.backend.get(key)
        except Exception as exc:
            self._backend_failed("Failed to read %s from cache (key=%s %s): %s", what, key, _fmt(context), exc)
            return None
        self._backend_ok()
        return value

    def _set(self, key: str, value: Any, ttl_seconds: Optional[int], what: str, **context: Any) -> None:
        if self.backend is None:
            return
        try:
            self.backend.set(key, value, ttl_seconds=ttl_seconds)
        except Exception as exc:
            self._backend_failed("Failed to write %s to cache (key=%s %s): %s", what, key, _fmt(context), exc)
            return
        self._backend_ok()

    def _month_ttl(self) -> int:
        return keys.seconds_until_month_end(self.now())

    # --- Community data ---

    def get_community_data(
        self, zip_code: str, city: Optional[str] = None, state: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        cached = self._get(keys.community_key(zip_code, city, state), "community data", zip=zip_code)
        return cached if isinstance(cached, dict) else None

    def set_community_data(
        self,
        zip_code: str,
        data: Dict[str, Any],
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> None:
        self._set(
            keys.community_key(zip_code, city, state), data, self._month_ttl(), "community data", zip=zip_code
        )

    # --- Category lists ---

    def get_category_list(
        self, zip_code: str, category: str, city: Optional[str] = None, state: Optional[str] = None
    ) -> Optional[str]:
        cached = self._get(
            keys.category_key(zip_code, category, city, state), "category list", zip=zip_code, category=category
        )
        return cached if isinstance(cached, str) and cached.strip() else None

    def set_category_list(
        self,
        zip_code: str,
        category: str,
        value: str,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> None:
        if not value or config.NONE_FOUND_LINE in value:
            return
        self._set(
            keys.category_key(zip_code, category, city, state),
            value,
            self._month_ttl(),
            "category list",
            zip=zip_code,
            category=category,
        )

    # --- Audience deltas ---

    def get_audience_delta(
        self,
        zip_code: str,
        audience: str,
        service_areas: Optional[Sequence[str]] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> Optional[Dict[str, str]]:
        cached = self._get(
            keys.audience_key(zip_code, audience, service_areas, city, state),
            "audience delta",
            zip=zip_code,
            audience=audience,
        )
        return cached if isinstance(cached, dict) and cached else None

    def set_audience_delta(
        self,
        zip_code: str,
        audience: str,
        delta: Dict[str, str],
        service_areas: Optional[Sequence[str]] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> None:
        if not delta:
            return
        self._set(
            keys.audience_key(zip_code, audience, service_areas, city, state),
            delta,
            config.AUDIENCE_DELTA_TTL_SECONDS,
            "audience delta",
            zip=zip_code,
            audience=audience,
        )

    # --- Place pools ---

    def get_place_pool(self, pool_key: str, **context: Any) -> Optional[CachedPlacePool]:
        cached = self._get(pool_key, "place pool", **context)
        if not isinstance(cached, dict):
            return None
        return CachedPlacePool.from_dict(cached)

    def set_place_pool(self, pool_key: str, pool: CachedPlacePool, **context: Any) -> None:
        # Pools carry no TTL; staleness is decided from fetched_at.
        self._set(pool_key, pool.to_dict(), None, "place pool", **context)

    # --- Seasonal sections ---

    def get_seasonal_sections(
        self, zip_code: str, city: Optional[str] = None, state: Optional[str] = None
    ) -> Optional[Dict[str, str]]:
        cached = self._get(keys.seasonal_key(zip_code, city, state), "seasonal sections", zip=zip_code)
        return cached if isinstance(cached, dict) and cached else None

    def set_seasonal_sections(
        self,
        zip_code: str,
        sections: Dict[str, str],
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> None:
        if not sections:
            return
        self._set(
            keys.seasonal_key(zip_code, city, state), sections, self._month_ttl(), "seasonal sections", zip=zip_code
        )

    # --- Place details ---

    def get_place_details(self, place_id: str) -> Optional[PlaceDetailsPayload]:
        cached = self._get(keys.place_details_key(place_id), "place details", place_id=place_id)
        if not isinstance(cached, dict):
            return None
        return PlaceDetailsPayload.from_dict(cached)

    def set_place_details(self, place_id: str, payload: PlaceDetailsPayload) -> None:
        self._set(
            keys.place_details_key(place_id),
            payload.to_dict(),
            config.PLACE_DETAILS_TTL_SECONDS,
            "place details",
            place_id=place_id,
        )

    # --- City descriptions ---

    def get_city_description(self, city: str, state: str) -> Optional[Dict[str, Any]]:
        cached = self._get(keys.city_description_key(city, state), "city description", city=city, state=state)
        return cached if isinstance(cached, dict) and cached.get("description") else None

    def set_city_description(self, city: str, state: str, payload: Dict[str, Any]) -> None:
        self._set(
            keys.city_description_key(city, state),
            payload,
            config.CITY_DESCRIPTION_TTL_SECONDS,
            "city description",
            city=city,
            state=state,
        )


def _fmt(context: Dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in context.items() if v is not None)
