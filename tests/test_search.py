import threading

import pytest

from community_data.geo import CityRecord
from community_data.http import ProviderError
from community_data.search import PlaceSearcher, per_anchor_max

SF = CityRecord("San Francisco", "CA", "San Francisco", 37.76, -122.42, 800000, ("94110",))


class FakeProvider:
    def __init__(self, failing_queries=()):
        self.failing_queries = set(failing_queries)
        self.calls = []
        self._lock = threading.Lock()

    def search_text(self, query, lat, lng, max_results, radius_m=15000):
        with self._lock:
            self.calls.append((query, round(lat, 2), round(lng, 2), max_results))
        if query in self.failing_queries:
            raise ProviderError("search failed")
        return [
            {
                "displayName": {"text": f"{query}@{lat:.2f}"},
                "id": f"{query}-{lat:.2f}",
                "formattedAddress": "",
                "location": {"latitude": SF.lat, "longitude": SF.lng},
                "rating": 4.9,
                "userRatingCount": 500,
            }
        ]

    def search_nearby(self, lat, lng, included_types, max_results, radius_m=15000):
        return []


def test_per_anchor_max_has_floor():
    assert per_anchor_max(10, 3) == 4
    assert per_anchor_max(4, 3) == 3
    assert per_anchor_max(12, 0) == 12


def test_results_keep_query_then_anchor_order():
    provider = FakeProvider()
    searcher = PlaceSearcher(provider, max_workers=4)

    places = searcher.fetch_scored_places(SF, "dining", ["tacos", "ramen"], 10)

    assert [p.name for p in places] == [
        "tacos@37.76",
        "tacos@37.82",
        "tacos@37.70",
        "ramen@37.76",
        "ramen@37.82",
        "ramen@37.70",
    ]
    assert {call[3] for call in provider.calls} == {4}
    assert all(not p.source_queries for p in places)


def test_seasonal_and_low_priority_queries_use_origin_only():
    provider = FakeProvider()
    searcher = PlaceSearcher(provider)

    places = searcher.fetch_scored_places(
        SF, "dining", ["tacos", "Patio Dining"], 10, seasonal_queries={"patio dining"}
    )
    patio = [p for p in places if p.name.startswith("Patio Dining")]
    assert [p.name for p in patio] == ["Patio Dining@37.76"]
    assert patio[0].source_queries == ["Patio Dining"]

    provider.calls.clear()
    searcher.fetch_scored_places(SF, "entertainment", ["comedy club"], 10)
    assert provider.calls == [("comedy club", 37.76, -122.42, 10)]


def test_provider_errors_propagate():
    searcher = PlaceSearcher(FakeProvider(failing_queries={"ramen"}))
    with pytest.raises(ProviderError):
        searcher.fetch_scored_places(SF, "dining", ["tacos", "ramen"], 10)


def test_no_queries_no_calls():
    provider = FakeProvider()
    assert PlaceSearcher(provider).fetch_scored_places(SF, "dining", [], 10) == []
    assert provider.calls == []
