"""Project configuration.

Category, audience, regional and seasonal query tables live here together
with API request shapes and cache TTLs. Per-category numbers can be
overridden from community_config.json when available.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

_REPO_ROOT = Path(__file__).resolve().parent.parent


class ConfigError(ValueError):
    pass


# --- API endpoints ---

PLACES_TEXT_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"
PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
PLACE_DETAILS_URL_TEMPLATE = "https://places.googleapis.com/v1/places/{place_id}"

# --- Field masks ---

PLACES_FIELD_MASK = (
    "places.displayName,places.formattedAddress,places.id,places.location,"
    "places.rating,places.userRatingCount"
)
PLACE_DETAILS_FIELD_MASK = (
    "displayName,formattedAddress,rating,userRatingCount,primaryType,types,"
    "generativeSummary"
)

# --- Paths ---

DEFAULT_DATASET_PATH = _REPO_ROOT / "data" / "uszips.csv"
DEFAULT_CACHE_PATH = _REPO_ROOT / "cache" / "community.sqlite"
DEFAULT_OVERRIDES_PATH = _REPO_ROOT / "community_config.json"

# --- Search ---

COMMUNITY_CACHE_KEY_PREFIX = "community"
DEFAULT_SEARCH_RADIUS_METERS = 15000
MAX_PLACE_DISTANCE_KM = 40.0
DISTANCE_SCORE_WEIGHT = 0.05
DISTANCE_SCORE_CAP_KM = 20.0

SEARCH_ANCHOR_OFFSETS: List[Tuple[float, float]] = [
    (0.0, 0.0),
    (0.06, 0.06),
    (-0.06, -0.06),
]

# Searched from the origin anchor only.
LOW_PRIORITY_ANCHOR_CATEGORIES = {
    "entertainment",
    "attractions",
    "sports_rec",
    "arts_culture",
    "fitness_wellness",
    "shopping",
    "education",
    "community_events",
}

SEASONAL_CATEGORY_LIMIT = 4
SEASONAL_SECTION_MAX_HEADERS = 3
SEASONAL_SECTION_MAX_PER_QUERY = 3

FETCH_MAX_WORKERS = 8
SEARCH_MAX_WORKERS = 6
REFRESH_MAX_WORKERS = 2

# Rough Places API pricing used for refresh logging.
SEARCH_CALL_COST_USD = 0.032
DETAILS_CALL_COST_USD = 0.025

# --- Cache TTLs (seconds) ---

AUDIENCE_DELTA_TTL_SECONDS = 12 * 60 * 60
PLACE_DETAILS_TTL_SECONDS = 12 * 60 * 60
CITY_DESCRIPTION_TTL_SECONDS = 30 * 24 * 60 * 60

# --- Filters ---

CHAIN_NAME_BLACKLIST = [
    "mcdonald",
    "burger king",
    "wendy",
    "taco bell",
    "kfc",
    "subway",
    "domino",
    "pizza hut",
    "papa john",
    "chipotle",
    "starbucks",
    "dunkin",
    "panera",
    "olive garden",
    "applebee",
    "chili",
    "red lobster",
    "outback",
    "ihop",
    "denny",
    "cracker barrel",
    "buffalo wild wings",
]

CHAIN_FILTER_CATEGORIES = {
    "dining",
    "coffee_brunch",
    "nightlife_social",
    "shopping",
    "fitness_wellness",
    "entertainment",
    "sports_rec",
}

NEIGHBORHOOD_REJECT_TERMS = [
    "services",
    "division",
    "department",
    "office",
    "authority",
    "program",
    "government",
    "city of",
    "county",
    "market",
    "center",
    "public works",
]

# --- Categories ---


@dataclass(frozen=True)
class CategoryConfig:
    display_limit: int
    pool_max: int
    min_rating: float
    min_reviews: int
    target_query_count: int
    fallback_queries: Tuple[str, ...]
    max_per_query: int
    min_primary_results: int


DEFAULT_CATEGORY_CONFIG = CategoryConfig(
    display_limit=5,
    pool_max=30,
    min_rating=0.0,
    min_reviews=0,
    target_query_count=1,
    fallback_queries=(),
    max_per_query=10,
    min_primary_results=2,
)

CATEGORY_CONFIG: Dict[str, CategoryConfig] = {
    "neighborhoods": CategoryConfig(5, 0, 0.0, 0, 1, (), 8, 0),
    "dining": CategoryConfig(
        8, 50, 4.5, 100, 2, ("best local restaurants", "popular restaurant"), 20, 3
    ),
    "coffee_brunch": CategoryConfig(
        5, 30, 4.4, 40, 2, ("coffee shop cafe", "breakfast brunch spot"), 12, 2
    ),
    "nature_outdoors": CategoryConfig(
        4, 20, 4.5, 20, 2, ("park trail hiking", "nature preserve garden"), 12, 2
    ),
    "entertainment": CategoryConfig(
        4, 18, 4.0, 10, 1, ("live music theater entertainment venue",), 10, 2
    ),
    "attractions": CategoryConfig(
        4,
        10,
        4.0,
        10,
        1,
        ("local attraction historic landmark tourist site", "zoo aquarium museum"),
        10,
        2,
    ),
    "sports_rec": CategoryConfig(4, 14, 4.0, 10, 1, ("sports recreation center",), 10, 2),
    "arts_culture": CategoryConfig(
        4, 14, 4.0, 8, 1, ("art gallery museum cultural center",), 10, 2
    ),
    "nightlife_social": CategoryConfig(
        5, 30, 4.0, 12, 1, ("brewery winery bar lounge",), 10, 2
    ),
    "fitness_wellness": CategoryConfig(
        4, 16, 4.0, 10, 1, ("gym fitness yoga wellness",), 10, 2
    ),
    "shopping": CategoryConfig(4, 16, 4.0, 10, 1, ("local shop boutique",), 10, 2),
    "education": CategoryConfig(3, 8, 3.8, 200, 1, ("university campus", "library"), 15, 0),
    "community_events": CategoryConfig(
        3, 10, 3.8, 5, 1, ("farmers market festival fair",), 10, 1
    ),
}


# Community record field per category.
CATEGORY_FIELD_MAP: Dict[str, str] = {
    key: f"{key}_list" for key in CATEGORY_CONFIG if key != "neighborhoods"
}

NEIGHBORHOOD_QUERIES: List[Dict[str, Any]] = [
    {
        "key": "neighborhoods_general",
        "query": "neighborhood subdivision residential community",
        "max": 12,
    },
    {
        "key": "neighborhoods_family",
        "query": "family neighborhood gated community luxury subdivision",
        "max": 12,
    },
    {
        "key": "neighborhoods_senior",
        "query": "55+ community retirement senior living",
        "max": 8,
    },
]

NONE_FOUND_LINE = "- (none found)"

# --- Regions ---

STATE_REGION_GROUPS: Dict[str, Tuple[str, ...]] = {
    "pacific_northwest": ("WA", "OR"),
    "mountain": ("CO", "UT", "ID", "MT", "WY"),
    "desert_southwest": ("AZ", "NM", "NV"),
    "gulf_coast": ("TX", "LA", "MS", "AL"),
    "atlantic_south": ("FL", "GA", "SC", "NC"),
    "mid_atlantic": ("VA", "MD", "DE", "NJ"),
    "new_england": ("NY", "CT", "RI", "MA", "NH", "ME"),
    "great_lakes": ("MN", "WI", "IL", "IN", "MI", "OH", "PA"),
    "california": ("CA",),
    "hawaii": ("HI",),
    "alaska": ("AK",),
}

WARM_LATITUDE_MAX = 32.0
COLD_LATITUDE_MIN = 44.0
SOUTHERN_LATITUDE_MAX = 30.0

GEO_QUERY_PACKS: Dict[str, Dict[str, List[str]]] = {
    "nature_outdoors": {
        "pacific_northwest": ["rainforest trail", "waterfall hike", "old growth forest", "hot springs"],
        "mountain": ["mountain trail", "alpine lake", "scenic overlook", "wildflower meadow"],
        "desert_southwest": ["desert preserve", "red rock trail", "slot canyon", "saguaro"],
        "gulf_coast": ["bayou trail", "coastal wetlands", "bird sanctuary"],
        "atlantic_south": ["beach", "barrier island", "nature preserve", "coastal trail"],
        "mid_atlantic": ["bay trail", "estuary", "state park"],
        "new_england": ["rocky coast trail", "lighthouse walk", "fall foliage", "covered bridge"],
        "great_lakes": ["lakefront trail", "dunes", "riverwalk"],
        "california": ["coastal trail", "redwood forest", "canyon hike", "wine country"],
        "hawaii": ["volcanic trail", "tropical garden", "waterfall hike", "beach park"],
        "alaska": ["glacier viewpoint", "wildlife refuge", "wilderness trail"],
        "warm": ["botanical garden", "nature preserve"],
        "cold": ["snowshoe trail", "winter hike"],
    },
    "sports_rec": {
        "pacific_northwest": ["ski resort", "kayak river", "mountain biking", "climbing gym"],
        "mountain": ["ski resort", "snowboarding", "mountain biking", "fly fishing"],
        "desert_southwest": ["golf course", "rock climbing", "mountain biking", "trail running"],
        "gulf_coast": ["fishing charter", "kayak tour", "golf course"],
        "atlantic_south": ["beach volleyball", "surfing", "golf course", "fishing pier"],
        "mid_atlantic": ["sailing", "kayak rental", "golf course"],
        "new_england": ["sailing", "whale watching", "ski resort", "ice skating"],
        "great_lakes": ["boat rental", "fishing", "beach volleyball", "ice fishing"],
        "california": ["surfing", "mountain biking", "rock climbing", "sailing"],
        "hawaii": ["snorkeling", "surfing", "outrigger canoe", "hiking"],
        "alaska": ["fishing charter", "kayaking", "dog sledding", "wildlife tour"],
        "warm": ["water sports", "outdoor courts"],
        "cold": ["ice rink", "indoor sports complex"],
    },
    "attractions": {
        "pacific_northwest": ["coffee roaster tour", "brewery", "farmers market", "art museum"],
        "mountain": ["scenic railway", "hot springs resort", "national park visitor center"],
        "desert_southwest": ["desert museum", "native heritage site", "historic pueblo", "observatory"],
        "gulf_coast": ["aquarium", "historic district", "plantation tour", "cajun heritage"],
        "atlantic_south": ["lighthouse", "historic fort", "aquarium", "pier"],
        "mid_atlantic": ["historic site", "maritime museum", "boardwalk"],
        "new_england": ["lighthouse", "historic harbor", "maritime museum", "lobster shack"],
        "great_lakes": ["lakefront attraction", "science museum", "brewery tour"],
        "california": ["winery", "aquarium", "historic mission", "theme park"],
        "hawaii": ["luau", "volcano tour", "cultural center", "botanical garden"],
        "alaska": ["glacier cruise", "wildlife center", "native heritage", "gold rush history"],
        "warm": ["botanical garden", "outdoor attraction"],
        "cold": ["indoor attraction", "history museum"],
    },
}

SEASON_QUERY_PACKS: Dict[str, Dict[str, List[str]]] = {
    "nature_outdoors": {
        "winter": ["winter trail", "scenic winter hike", "nature preserve"],
        "spring": ["wildflower trail", "botanical garden", "spring bloom"],
        "summer": ["shaded trail", "waterfront park", "lake beach"],
        "fall": ["fall foliage", "scenic trail", "nature walk"],
    },
    "sports_rec": {
        "winter": ["indoor sports complex", "fitness center", "climbing gym"],
        "spring": ["outdoor courts", "trail running", "golf course"],
        "summer": ["water sports", "kayak rental", "outdoor recreation"],
        "fall": ["golf course", "outdoor courts", "sports league"],
    },
    "attractions": {
        "winter": ["indoor attraction", "museum", "aquarium"],
        "spring": ["botanical garden", "outdoor attraction", "historic site"],
        "summer": ["outdoor attraction", "festival grounds", "theme park"],
        "fall": ["historic site", "harvest festival", "scenic railway"],
    },
    "community_events": {
        "winter": ["holiday market", "winter festival", "tree lighting"],
        "spring": ["farmers market", "spring festival", "garden show"],
        "summer": ["summer festival", "outdoor concert", "night market"],
        "fall": ["harvest festival", "fall market", "pumpkin patch"],
    },
    "dining": {
        "winter": ["cozy restaurant", "fireplace dining", "comfort food"],
        "spring": ["patio dining", "brunch spot", "farm to table"],
        "summer": ["rooftop restaurant", "outdoor dining", "waterfront restaurant"],
        "fall": ["harvest menu", "seasonal restaurant", "farm to table"],
    },
    "coffee_brunch": {
        "winter": ["cozy cafe", "fireplace coffee shop", "hot chocolate"],
        "spring": ["outdoor cafe", "patio brunch", "seasonal latte"],
        "summer": ["iced coffee", "outdoor seating cafe", "cold brew"],
        "fall": ["pumpkin spice", "autumn latte", "cozy coffee shop"],
    },
    "nightlife_social": {
        "winter": ["cozy bar", "fireplace lounge", "whiskey bar"],
        "spring": ["rooftop bar", "patio bar", "beer garden"],
        "summer": ["rooftop bar", "beer garden", "outdoor lounge"],
        "fall": ["craft beer", "bourbon bar", "wine bar"],
    },
    "fitness_wellness": {
        "winter": ["indoor fitness", "yoga studio", "heated pool"],
        "spring": ["outdoor yoga", "boot camp", "running group"],
        "summer": ["outdoor fitness", "swim club", "morning workout"],
        "fall": ["indoor gym", "yoga studio", "fitness class"],
    },
    "shopping": {
        "winter": ["holiday shopping", "gift shop", "boutique"],
        "spring": ["farmers market", "outdoor market", "garden center"],
        "summer": ["outdoor market", "artisan fair", "boutique"],
        "fall": ["harvest market", "fall boutique", "artisan shop"],
    },
}

# --- Audiences ---

AUDIENCE_SEGMENTS = (
    "young_professionals",
    "growing_families",
    "active_retirees",
    "luxury_buyers",
    "investors_relocators",
)

AUDIENCE_SEGMENT_ALIASES: Dict[str, str] = {
    "first_time_homebuyers": "young_professionals",
    "downsizers_retirees": "active_retirees",
    "luxury_homebuyers": "luxury_buyers",
    "real_estate_investors": "investors_relocators",
    "job_transferees": "investors_relocators",
    "vacation_property_buyers": "investors_relocators",
    "military_veterans": "investors_relocators",
    "relocators": "investors_relocators",
}

AUDIENCE_AUGMENT_CATEGORIES = [
    "entertainment",
    "sports_rec",
    "nature_outdoors",
    "dining",
    "fitness_wellness",
    "shopping",
]

AUDIENCE_AUGMENT_LIMITS: Dict[str, int] = {
    "entertainment": 6,
    "sports_rec": 6,
    "nature_outdoors": 6,
    "dining": 8,
    "fitness_wellness": 6,
    "shopping": 6,
}

AUDIENCE_AUGMENT_QUERIES: Dict[str, Dict[str, List[str]]] = {
    "young_professionals": {
        "dining": [
            "trendy restaurant tapas sushi ramen",
            "craft cocktail bar gastropub",
            "vegan vegetarian restaurant",
        ],
        "entertainment": ["live music venue comedy club", "rooftop bar nightclub"],
        "sports_rec": ["climbing gym crossfit", "adult sports league"],
        "nature_outdoors": ["urban park riverwalk trail", "rooftop garden scenic overlook"],
        "fitness_wellness": ["boutique fitness spin cycling", "yoga pilates barre studio"],
        "shopping": ["vintage boutique thrift", "artisan market bookstore"],
    },
    "growing_families": {
        "dining": ["family restaurant kids menu", "pizza casual dining"],
        "entertainment": ["family entertainment center arcade", "children theater puppet show"],
        "sports_rec": ["youth sports soccer baseball", "community pool splash pad"],
        "nature_outdoors": [
            "playground park picnic area",
            "nature center petting zoo",
            "easy hiking family trail",
        ],
        "fitness_wellness": ["family gym pool", "kids yoga swim lessons"],
        "shopping": ["toy store children boutique", "family shopping kids clothes"],
    },
    "active_retirees": {
        "dining": ["fine dining seafood steakhouse", "bistro brunch classic restaurant"],
        "entertainment": ["performing arts symphony opera", "historic theater concert hall"],
        "sports_rec": ["golf course country club", "tennis pickleball courts"],
        "nature_outdoors": [
            "botanical garden arboretum",
            "scenic overlook easy walk",
            "bird watching nature preserve",
        ],
        "fitness_wellness": ["wellness spa massage", "senior fitness gentle yoga"],
        "shopping": ["antique shop gallery", "bookstore artisan craft"],
    },
    "luxury_buyers": {
        "dining": ["fine dining michelin tasting menu", "upscale steakhouse sushi omakase"],
        "entertainment": ["private theater vip lounge", "exclusive club members only"],
        "sports_rec": ["private country club golf", "yacht club tennis pro"],
        "nature_outdoors": ["private garden estate grounds", "scenic overlook exclusive"],
        "fitness_wellness": ["luxury spa resort wellness", "private training personal gym"],
        "shopping": ["designer boutique luxury brand", "fine jewelry art gallery"],
    },
    "investors_relocators": {
        "dining": ["popular restaurant highly rated", "local favorite food hall"],
        "entertainment": ["event venue concert", "community theater performance"],
        "sports_rec": ["recreation center sports complex", "stadium arena"],
        "nature_outdoors": ["state park regional trail", "lake river waterfront"],
        "fitness_wellness": ["fitness center gym", "community recreation"],
        "shopping": ["shopping district main street", "local market retail"],
    },
}

# Audience -> neighborhood list field used in the audience view.
AUDIENCE_NEIGHBORHOOD_FIELDS: Dict[str, str] = {
    "growing_families": "neighborhoods_family_list",
    "luxury_buyers": "neighborhoods_luxury_list",
    "active_retirees": "neighborhoods_senior_list",
    "investors_relocators": "neighborhoods_relocators_list",
}


# --- Category table ---


class CategoryTable:
    """Per-category settings: the defaults above plus any file overrides.

    Tables are never modified in place; with_overrides returns a new one.
    """

    def __init__(self, categories: Optional[Mapping[str, CategoryConfig]] = None) -> None:
        self._categories: Dict[str, CategoryConfig] = dict(
            categories if categories is not None else CATEGORY_CONFIG
        )

    def get(self, category: str) -> CategoryConfig:
        return self._categories.get(category, DEFAULT_CATEGORY_CONFIG)

    def display_limit(self, category: str) -> int:
        return self.get(category).display_limit

    def pool_max(self, category: str) -> int:
        return self.get(category).pool_max

    def fallback_queries(self, category: str) -> List[str]:
        return list(self.get(category).fallback_queries)

    def min_primary_results(self, category: str) -> int:
        return self.get(category).min_primary_results

    def target_query_count(self, category: str) -> int:
        return self.get(category).target_query_count

    def base_categories(self) -> List[str]:
        """Categories rendered as community lists (neighborhoods are separate)."""
        return [key for key in self._categories if key != "neighborhoods"]

    def with_overrides(self, overrides: Mapping[str, Any]) -> "CategoryTable":
        categories = dict(self._categories)
        for category, raw in overrides.items():
            if category not in categories:
                raise ConfigError(f"Unknown category: {category}")
            if not isinstance(raw, dict):
                raise ConfigError(f"Override for {category} must be an object")
            categories[category] = _coerce_category(category, categories[category], raw)
        return CategoryTable(categories)


DEFAULT_CATEGORIES = CategoryTable()


# --- Accessors (default table) ---


def get_category_config(category: str) -> CategoryConfig:
    return DEFAULT_CATEGORIES.get(category)


def get_category_display_limit(category: str) -> int:
    return DEFAULT_CATEGORIES.display_limit(category)


def get_category_pool_max(category: str) -> int:
    return DEFAULT_CATEGORIES.pool_max(category)


def get_category_fallback_queries(category: str) -> List[str]:
    return DEFAULT_CATEGORIES.fallback_queries(category)


def get_category_min_primary_results(category: str) -> int:
    return DEFAULT_CATEGORIES.min_primary_results(category)


def get_category_target_query_count(category: str) -> int:
    return DEFAULT_CATEGORIES.target_query_count(category)


def get_audience_augment_queries(audience: str, category: str) -> List[str]:
    return list(AUDIENCE_AUGMENT_QUERIES.get(audience, {}).get(category, []))


def get_audience_augment_limit(category: str) -> int:
    return AUDIENCE_AUGMENT_LIMITS.get(category, 6)


def base_categories() -> List[str]:
    return DEFAULT_CATEGORIES.base_categories()


# --- Overrides ---

_OVERRIDABLE_FIELDS = {
    "display_limit": int,
    "pool_max": int,
    "min_rating": float,
    "min_reviews": int,
    "target_query_count": int,
    "max_per_query": int,
    "min_primary_results": int,
}


def _coerce_category(category: str, current: CategoryConfig, raw: Dict[str, Any]) -> CategoryConfig:
    changes: Dict[str, Any] = {}
    for field_name, value in raw.items():
        if field_name == "fallback_queries":
            if not isinstance(value, list) or not all(isinstance(q, str) for q in value):
                raise ConfigError(f"{category}.fallback_queries must be a list of strings")
            changes[field_name] = tuple(q.strip() for q in value if q.strip())
            continue
        caster = _OVERRIDABLE_FIELDS.get(field_name)
        if caster is None:
            raise ConfigError(f"Unknown field for {category}: {field_name}")
        try:
            changes[field_name] = caster(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid {category}.{field_name}: {value!r}") from exc
        if changes[field_name] < 0:
            raise ConfigError(f"{category}.{field_name} must be >= 0")
    return replace(current, **changes)


def load_category_overrides(path: Optional[str] = None) -> Optional[CategoryTable]:
    """Read per-category overrides from a JSON file into a new CategoryTable.

    Returns None when no file exists. The path defaults to
    COMMUNITY_CONFIG_PATH, then community_config.json at the repo root.
    """
    raw_path = path or os.environ.get("COMMUNITY_CONFIG_PATH") or str(DEFAULT_OVERRIDES_PATH)
    config_path = Path(raw_path)
    if not config_path.exists():
        return None
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    categories = data.get("categories", {})
    if not isinstance(categories, dict):
        raise ConfigError("'categories' must be an object")
    return DEFAULT_CATEGORIES.with_overrides(categories)
