import random
from datetime import datetime, timezone

import pytest

from community_data import config
from community_data.geo import CityRecord
from community_data.queries import (
    QueryComposer,
    build_localized_queries,
    derive_geo_pack_keys,
    derive_season,
    ensure_target_count,
    estimate_cost_usd,
    estimate_search_calls,
    get_query_overrides,
    merge_unique_queries,
    month_key,
    pick_seasonal_categories,
)
from community_data.sampling import WeightedSampler

SF = CityRecord("San Francisco", "CA", "San Francisco", 37.76, -122.42, 800000, ("94110",))
MARCH = datetime(2026, 3, 10, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "state,lat,expected",
    [
        ("CA", 37.76, ["california"]),
        ("fl", 25.7, ["atlantic_south", "warm"]),
        ("MN", 45.0, ["great_lakes", "cold"]),
        ("ZZ", 35.0, []),
    ],
)
def test_geo_pack_keys(state, lat, expected):
    assert derive_geo_pack_keys(state, lat) == expected


def test_season_flips_in_southern_band():
    assert derive_season(37.0, 1) == "winter"
    assert derive_season(37.0, 9) == "fall"
    assert derive_season(25.0, 1) == "fall"
    assert derive_season(25.0, 9) == "summer"
    assert derive_season(25.0, 4) == "spring"
    assert month_key(MARCH) == "march"


def test_merge_unique_queries_normalizes_case_and_spacing():
    merged = merge_unique_queries(["Coffee  Shop", "park"], ["coffee shop", " Park ", "", "museum"])
    assert merged == ["Coffee  Shop", "park", "museum"]


def test_ensure_target_count_tops_up_from_fallback():
    assert ensure_target_count([], ["a", "b", "c"], 2) == ["a", "b"]
    assert ensure_target_count(["x"], ["a", "b"], 2) == ["x", "a"]
    assert ensure_target_count(["x", "y", "z"], ["a"], 2) == ["x", "y", "z"]


def test_localized_queries_put_base_first():
    queries = build_localized_queries(SF, "nature_outdoors", ["park"], ["lake beach"])
    assert queries[:2] == ["park", "lake beach"]
    assert queries[2:] == config.GEO_QUERY_PACKS["nature_outdoors"]["california"]
    # categories without regional packs keep their base queries only
    assert build_localized_queries(SF, "dining", ["tacos"]) == ["tacos"]


def test_seasonal_categories_are_stable_for_a_seed():
    categories = ["dining", "coffee_brunch", "nature_outdoors", "attractions", "shopping", "sports_rec"]
    first = pick_seasonal_categories("94110:march:base", categories, 4)
    second = pick_seasonal_categories("94110:march:base", categories, 4)
    assert first == second
    assert len(first) == 4
    assert set(first) <= set(categories)
    assert pick_seasonal_categories("seed", categories[:3], 4) == categories[:3]


def test_category_plan_adds_one_seasonal_query():
    composer = QueryComposer(WeightedSampler(random.Random(3)))
    used = set()
    plan = composer.build_category_plan(SF, "nature_outdoors", ["park trail"], MARCH, True, used)

    spring = config.SEASON_QUERY_PACKS["nature_outdoors"]["spring"]
    assert plan.queries[:2] == ["park trail", "park trail hiking"]
    assert plan.queries[2] in spring
    assert plan.seasonal_queries == {plan.queries[2]}
    assert used == {plan.queries[2]}
    assert plan.max_per_query == 12


def test_category_plan_without_seasonal_slot():
    composer = QueryComposer(WeightedSampler(random.Random(3)))
    plan = composer.build_category_plan(SF, "dining", [], MARCH, max_per_query=4)
    assert plan.queries == ["best local restaurants", "popular restaurant"]
    assert plan.seasonal_queries == set()
    assert plan.max_per_query == 4


def test_seasonal_headers_are_not_reused():
    composer = QueryComposer(WeightedSampler(random.Random(5)))
    used = set(config.SEASON_QUERY_PACKS["dining"]["spring"])
    assert composer.pick_seasonal_query(SF, "dining", MARCH, used) is None


def test_search_call_estimate_and_cost():
    assert estimate_search_calls("dining", ["a", "b"], {"b"}, 3) == 4
    assert estimate_search_calls("entertainment", ["a", "b"], set(), 3) == 2
    assert estimate_search_calls("dining", [], set(), 3) == 0
    assert estimate_cost_usd(10, 4) == pytest.approx(0.42)


def test_library_queries_relax_review_minimum():
    assert get_query_overrides("education", "Public Library") == {"min_reviews": 10}
    assert get_query_overrides("education", "university campus") is None
    assert get_query_overrides("dining", "library cafe") is None
