"""Geospatial helpers and the city/zip reference dataset."""
from __future__ import annotations

import csv
import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CityRecord:
    city: str
    state_id: str
    county_name: str
    lat: float
    lng: float
    population: int
    zips: Tuple[str, ...]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def _parse_float(value: Optional[str]) -> Optional[float]:
    try:
        parsed = float((value or "").strip())
    except ValueError:
        return None
    if math.isnan(parsed):
        return None
    return parsed


def _parse_population(value: Optional[str]) -> int:
    parsed = _parse_float(value)
    if parsed is None:
        return 0
    return int(parsed)


def parse_city_rows(rows: Iterable[Dict[str, str]]) -> List[CityRecord]:
    records: List[CityRecord] = []
    for row in rows:
        lat = _parse_float(row.get("lat"))
        lng = _parse_float(row.get("lng"))
        if lat is None or lng is None:
            continue
        zips = tuple(z for z in (row.get("zips") or "").split() if z)
        records.append(
            CityRecord(
                city=(row.get("city") or "").strip(),
                state_id=(row.get("state_id") or "").strip().upper(),
                county_name=(row.get("county_name") or "").strip(),
                lat=lat,
                lng=lng,
                population=_parse_population(row.get("population")),
                zips=zips,
            )
        )
    return records


class GeoDataset:
    """City/zip reference data, loaded lazily once per instance."""

    def __init__(self, path: Optional[str] = None, records: Optional[Sequence[CityRecord]] = None) -> None:
        self.path = Path(path) if path else None
        self._records: Optional[List[CityRecord]] = list(records) if records is not None else None
        self._zip_index: Optional[Dict[str, CityRecord]] = None
        self._lock = threading.Lock()
        self._warned_missing = False

    def load(self) -> List[CityRecord]:
        with self._lock:
            if self._records is not None:
                return self._records
            if self.path is None or not self.path.exists():
                if not self._warned_missing:
                    logger.warning("City dataset not found at %s; location lookups disabled", self.path)
                    self._warned_missing = True
                self._records = []
                return self._records
            with self.path.open("r", encoding="utf-8", newline="") as f:
                self._records = parse_city_rows(csv.DictReader(f))
            logger.info("Loaded %s city records from %s", len(self._records), self.path)
            return self._records

    def zip_index(self) -> Dict[str, CityRecord]:
        records = self.load()
        with self._lock:
            if self._zip_index is None:
                index: Dict[str, CityRecord] = {}
                for record in records:
                    for zip_code in record.zips:
                        current = index.get(zip_code)
                        if current is None or record.population > current.population:
                            index[zip_code] = record
                self._zip_index = index
            return self._zip_index

    def resolve_location(
        self,
        zip_code: str,
        preferred_city: Optional[str] = None,
        preferred_state: Optional[str] = None,
    ) -> Optional[CityRecord]:
        records = self.load()
        if preferred_city:
            city = preferred_city.strip().lower()
            state = (preferred_state or "").strip().upper()
            best: Optional[CityRecord] = None
            for record in records:
                if record.city.lower() != city:
                    continue
                if state and record.state_id != state:
                    continue
                if zip_code not in record.zips:
                    continue
                if best is None or record.population > best.population:
                    best = record
            if best is not None:
                return best
        return self.zip_index().get(zip_code)


class DistanceCache:
    """Per-request memoized distance from a single origin."""

    def __init__(self, origin_lat: float, origin_lng: float) -> None:
        self.origin_lat = origin_lat
        self.origin_lng = origin_lng
        self._cache: Dict[str, float] = {}

    def get_distance_km(self, lat: float, lng: float) -> float:
        key = f"{lat:.5f},{lng:.5f}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        distance = haversine_km(self.origin_lat, self.origin_lng, lat, lng)
        self._cache[key] = distance
        return distance


class ServiceAreaDistanceCache:
    """Per-request memoized distance to the nearest service-area center."""

    def __init__(self, centers: Sequence[Tuple[float, float]]) -> None:
        self.centers = list(centers)
        self._cache: Dict[str, Optional[float]] = {}

    def get_distance_km(self, lat: float, lng: float) -> Optional[float]:
        if not self.centers:
            return None
        key = f"{lat:.5f},{lng:.5f}"
        if key in self._cache:
            return self._cache[key]
        distance = min(haversine_km(c_lat, c_lng, lat, lng) for c_lat, c_lng in self.centers)
        self._cache[key] = distance
        return distance


def _split_service_area(value: str) -> Tuple[str, Optional[str]]:
    parts = [p.strip() for p in value.split(",")]
    city = parts[0].lower() if parts else ""
    state = parts[1].upper() if len(parts) > 1 and parts[1] else None
    return city, state


def resolve_service_area_centers(
    service_areas: Optional[Sequence[str]],
    location: CityRecord,
    records: Sequence[CityRecord],
) -> Optional[List[Tuple[float, float]]]:
    if not service_areas:
        return None
    by_city: Dict[str, List[CityRecord]] = {}
    for record in records:
        by_city.setdefault(record.city.lower(), []).append(record)

    centers: List[Tuple[float, float]] = []
    for raw in service_areas:
        city, state = _split_service_area(raw or "")
        if not city:
            continue
        matches = by_city.get(city, [])
        if state:
            matches = [m for m in matches if m.state_id == state]
        if not matches:
            continue
        same_state = [m for m in matches if m.state_id == location.state_id]
        pool = same_state or matches
        best = max(pool, key=lambda record: record.population)
        centers.append((best.lat, best.lng))
    return centers or None


def get_search_anchors(
    location: CityRecord, offsets: Sequence[Tuple[float, float]]
) -> List[Tuple[float, float]]:
    anchors: List[Tuple[float, float]] = []
    seen = set()
    for d_lat, d_lng in offsets:
        lat = location.lat + d_lat
        lng = location.lng + d_lng
        key = f"{lat:.4f},{lng:.4f}"
        if key in seen:
            continue
        seen.add(key)
        anchors.append((lat, lng))
    return anchors
