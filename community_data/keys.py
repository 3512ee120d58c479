"""Cache key builders, TTLs and month-based pool staleness."""
from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Optional, Sequence

from . import config

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.strip().lower()).strip("-")


def service_area_signature(service_areas: Optional[Sequence[str]]) -> Optional[str]:
    """Order-independent 12-char hash of a service-area list."""
    if not service_areas:
        return None
    normalized = sorted(
        area.strip().lower() for area in service_areas if area and area.strip()
    )
    if not normalized:
        return None
    return hashlib.sha1("|".join(normalized).encode("utf-8")).hexdigest()[:12]


def community_key(zip_code: str, city: Optional[str] = None, state: Optional[str] = None) -> str:
    prefix = config.COMMUNITY_CACHE_KEY_PREFIX
    if city and state:
        return f"{prefix}:{zip_code}:{state.strip().upper()}:{slugify(city)}"
    return f"{prefix}:{zip_code}"


def category_key(
    zip_code: str, category: str, city: Optional[str] = None, state: Optional[str] = None
) -> str:
    return f"{community_key(zip_code, city, state)}:cat:{category}"


def audience_key(
    zip_code: str,
    audience: str,
    service_areas: Optional[Sequence[str]] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
) -> str:
    key = f"{community_key(zip_code, city, state)}:aud:{audience}"
    signature = service_area_signature(service_areas)
    if signature:
        key = f"{key}:sa:{signature}"
    return key


def pool_key(
    zip_code: str,
    category: str,
    audience: Optional[str] = None,
    service_areas: Optional[Sequence[str]] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
) -> str:
    key = f"{community_key(zip_code, city, state)}:pool:{category}"
    if audience:
        key = f"{key}:{audience}"
    signature = service_area_signature(service_areas)
    if signature:
        key = f"{key}:sa:{signature}"
    return key


def seasonal_key(zip_code: str, city: Optional[str] = None, state: Optional[str] = None) -> str:
    return f"{community_key(zip_code, city, state)}:seasonal"


def city_description_key(city: str, state: str) -> str:
    return f"{config.COMMUNITY_CACHE_KEY_PREFIX}:citydesc:{state.strip().upper()}:{slugify(city)}"


def place_details_key(place_id: str) -> str:
    return f"{config.COMMUNITY_CACHE_KEY_PREFIX}:place:{place_id}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until_month_end(now: Optional[datetime] = None) -> int:
    now = (now or utc_now()).astimezone(timezone.utc)
    if now.month == 12:
        next_month = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_month = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return max(1, int((next_month - now).total_seconds()))


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_pool_stale(fetched_at: Optional[str], now: Optional[datetime] = None) -> bool:
    parsed = parse_timestamp(fetched_at)
    if parsed is None:
        return True
    now = (now or utc_now()).astimezone(timezone.utc)
    return (parsed.year, parsed.month) != (now.year, now.month)
