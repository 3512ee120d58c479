from community_data.cache import MemoryKeyValueCache
from community_data.details import PlaceDetailsHydrator, details_to_payload, extract_keywords
from community_data.http import ProviderError
from community_data.places import ScoredPlace
from community_data.store import CommunityCache, PlaceDetailsPayload


class FakeDetailsProvider:
    def __init__(self, details_by_id, failing=()):
        self.details_by_id = details_by_id
        self.failing = set(failing)
        self.calls = []

    def get_details(self, place_id):
        self.calls.append(place_id)
        if place_id in self.failing:
            raise ProviderError("details unavailable")
        return self.details_by_id.get(place_id)


def place(place_id, keywords=None):
    return ScoredPlace(
        name=f"Place {place_id}",
        rating=4.6,
        review_count=120,
        address="",
        category="coffee_brunch",
        place_id=place_id,
        keywords=keywords or [],
    )


def test_extract_keywords_skips_generic_types():
    details = {
        "primaryType": "coffee_shop",
        "types": ["coffee_shop", "cafe", "food", "point_of_interest", "bakery", "store", "breakfast_restaurant"],
    }
    assert extract_keywords(details) == ["coffee shop", "cafe", "bakery"]


def test_summary_wins_over_keywords():
    details = {"generativeSummary": {"overview": {"text": " Sunny corner cafe. "}}, "types": ["cafe"]}
    assert details_to_payload(details) == PlaceDetailsPayload(summary="Sunny corner cafe.")
    assert details_to_payload(None) == PlaceDetailsPayload()


def test_hydrate_fills_keywords_and_caches_details():
    provider = FakeDetailsProvider({"a": {"primaryType": "cafe"}, "b": {"generativeSummary": {"overview": {"text": "Bagels"}}}})
    cache = CommunityCache(MemoryKeyValueCache())
    hydrator = PlaceDetailsHydrator(provider, cache, max_workers=2)

    hydrated = hydrator.hydrate([place("a", keywords=["cafe", "patio"]), place("b")])
    assert hydrated[0].keywords == ["cafe", "patio"]
    assert hydrated[1].summary == "Bagels"

    hydrator.hydrate([place("a")])
    assert sorted(provider.calls) == ["a", "b"]
    assert cache.get_place_details("a") == PlaceDetailsPayload(keywords=["cafe"])


def test_details_failure_keeps_place_unchanged():
    provider = FakeDetailsProvider({}, failing={"x"})
    hydrator = PlaceDetailsHydrator(provider, CommunityCache(MemoryKeyValueCache()))
    original = place("x", keywords=["tea"])
    assert hydrator.hydrate([original]) == [original]


def test_no_provider_means_no_details():
    hydrator = PlaceDetailsHydrator(None, CommunityCache(MemoryKeyValueCache()))
    assert hydrator.hydrate([place("a")])[0].keywords == []
    assert hydrator.hydrate([]) == []
