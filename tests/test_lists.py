import random

from community_data import config
from community_data.lists import (
    NONE_FOUND,
    apply_audience_delta,
    build_seasonal_query_sections,
    count_list_items,
    format_place_list,
    get_audience_skip_categories,
    merge_lists,
    trim_community_data_lists,
    trim_list,
)
from community_data.places import ScoredPlace
from community_data.sampling import WeightedSampler


def place(name, reviews=100, summary=None, keywords=None, source_queries=None):
    return ScoredPlace(
        name=name,
        rating=4.5,
        review_count=reviews,
        address=f"{name} St",
        category="dining",
        place_id=name.lower().replace(" ", "-"),
        summary=summary,
        keywords=keywords or [],
        source_queries=source_queries or [],
    )


def test_merge_puts_delta_first_and_skips_duplicates():
    delta = "- Alpha — tasting menu\n- Bravo"
    base = "- bravo — brunch\n- Charlie\n- Delta"
    assert merge_lists(delta, base, 3) == "- Alpha — tasting menu\n- Bravo\n- Charlie"


def test_merge_without_delta_trims_base():
    assert merge_lists(None, "- A\n- B\n- C", 2) == "- A\n- B"
    assert merge_lists(NONE_FOUND, "- A", 5) == "- A"
    assert merge_lists(None, None, 5) == NONE_FOUND


def test_trim_list_drops_sentinels_and_strips_details():
    assert trim_list("- A — cozy, patio\n- (none found)\n- B", 5, strip_keywords=True) == "- A\n- B"
    assert trim_list("", 5) == NONE_FOUND
    assert count_list_items("- A\n\n- B\n- (none found)") == 2


def test_format_place_list_ranks_and_describes():
    places = [
        place("Small", reviews=5, keywords=["tacos"]),
        place("Big", reviews=5000, summary="Landmark diner"),
        place("Mid", reviews=300, keywords=["ramen", "bar"]),
    ]
    assert format_place_list(places, 2) == "- Big — Landmark diner\n- Mid — ramen, bar"
    assert format_place_list(places[:1], 5, include_keywords=False) == "- Small"
    assert format_place_list([], 5) == NONE_FOUND


def test_audience_delta_merges_into_known_fields_only():
    data = {"dining_list": "- Base Spot", "city": "San Francisco"}
    delta = {"dining": "- Delta Spot", "neighborhoods": "- Somewhere", "shopping": NONE_FOUND}
    merged = apply_audience_delta(data, delta)
    assert merged["dining_list"] == "- Delta Spot\n- Base Spot"
    assert merged["city"] == "San Francisco"
    assert "shopping_list" not in merged
    assert data["dining_list"] == "- Base Spot"


def test_skip_categories_need_enough_delta_entries():
    delta = {
        "dining": "- A\n- B\n- C",
        "entertainment": "- Only One",
        "shopping": NONE_FOUND,
        "sports_rec": "- A\n- B",
    }
    assert get_audience_skip_categories(delta) == {"dining", "sports_rec"}
    assert get_audience_skip_categories(None) == set()


def test_trim_community_data_lists_caps_every_field():
    data = {
        "neighborhoods_list": "\n".join(f"- Hood {i} — quiet" for i in range(9)),
        "dining_list": "\n".join(f"- Spot {i}" for i in range(12)),
    }
    trimmed = trim_community_data_lists(data)
    assert count_list_items(trimmed["neighborhoods_list"]) == config.get_category_display_limit("neighborhoods")
    assert "quiet" not in trimmed["neighborhoods_list"]
    assert count_list_items(trimmed["dining_list"]) == 8
    assert trimmed["shopping_list"] == NONE_FOUND
    assert trimmed["seasonal_geo_sections"] == {}


def test_seasonal_sections_group_by_source_query():
    grouped = {
        "nature_outdoors": [
            place("Ocean Beach", source_queries=["lake beach"]),
            place("Stow Lake", source_queries=["Lake  Beach"]),
        ],
        "dining": [place("Patio Grill", source_queries=["patio dining"]), place("Plain")],
    }
    sections = build_seasonal_query_sections(grouped, WeightedSampler(random.Random(1)))
    assert set(sections) == {"lake beach", "patio dining"}
    assert count_list_items(sections["lake beach"]) == 2
    assert sections["patio dining"] == "- Patio Grill"
