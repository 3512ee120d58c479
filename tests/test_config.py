import json

import pytest

from community_data import config


def write_overrides(tmp_path, payload):
    path = tmp_path / "community_config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_unknown_category_uses_defaults():
    assert config.get_category_display_limit("underwater_basket_weaving") == 5
    assert config.get_category_pool_max("underwater_basket_weaving") == 30
    assert config.get_category_min_primary_results("underwater_basket_weaving") == 2
    assert config.get_category_target_query_count("underwater_basket_weaving") == 1
    assert config.get_category_fallback_queries("underwater_basket_weaving") == []


def test_base_categories_exclude_neighborhoods():
    categories = config.base_categories()
    assert "neighborhoods" not in categories
    assert categories[0] == "dining"
    assert set(categories) == set(config.CATEGORY_FIELD_MAP)


def test_overrides_build_a_new_table_and_leave_defaults_alone(tmp_path):
    path = write_overrides(
        tmp_path,
        {"categories": {"dining": {"display_limit": 3, "fallback_queries": ["taqueria", " "]}}},
    )
    table = config.load_category_overrides(path)

    assert table.display_limit("dining") == 3
    assert table.fallback_queries("dining") == ["taqueria"]
    assert table.pool_max("dining") == 50
    assert table.base_categories() == config.base_categories()

    assert config.get_category_display_limit("dining") == 8
    assert config.CATEGORY_CONFIG["dining"].display_limit == 8
    assert config.DEFAULT_CATEGORIES.display_limit("dining") == 8


def test_missing_override_file_is_ignored(tmp_path):
    assert config.load_category_overrides(str(tmp_path / "absent.json")) is None


@pytest.mark.parametrize(
    "payload",
    [
        {"categories": {"unknown": {"display_limit": 3}}},
        {"categories": {"dining": {"colour": "blue"}}},
        {"categories": {"dining": {"display_limit": -1}}},
        {"categories": {"dining": {"min_rating": "high"}}},
        {"categories": {"dining": {"fallback_queries": "tacos"}}},
        {"categories": []},
        ["not", "an", "object"],
    ],
)
def test_invalid_overrides_raise_config_error(tmp_path, payload):
    with pytest.raises(config.ConfigError):
        config.load_category_overrides(write_overrides(tmp_path, payload))


def test_audience_lookups():
    assert config.get_audience_augment_queries("luxury_buyers", "dining")
    assert config.get_audience_augment_queries("astronauts", "dining") == []
    assert config.get_audience_augment_limit("dining") == 8
    assert config.get_audience_augment_limit("education") == 6
