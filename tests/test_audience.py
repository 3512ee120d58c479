from community_data.audience import (
    AudienceDeltaBuilder,
    combine_audience_queries,
    neighborhood_field_for,
    normalize_audience_segment,
)
from community_data.geo import CityRecord
from community_data.places import ScoredPlace
from community_data.queries import CategoryQueryPlan

SF = CityRecord("San Francisco", "CA", "San Francisco", 37.76, -122.42, 800000, ("94110",))


class FakeSearcher:
    def __init__(self, results_by_query):
        self.results_by_query = results_by_query
        self.calls = []

    def fetch_scored_places(
        self,
        location,
        category,
        queries,
        max_per_query,
        distance_cache=None,
        service_area_cache=None,
        seasonal_queries=None,
        apply_overrides=True,
    ):
        self.calls.append((list(queries), apply_overrides))
        results = []
        for query in queries:
            results.extend(self.results_by_query.get(query, []))
        return results


def place(name):
    return ScoredPlace(
        name=name,
        rating=4.8,
        review_count=400,
        address=f"{name} St",
        category="dining",
        place_id=name.lower(),
    )


def make_builder(searcher):
    return AudienceDeltaBuilder(searcher, pools=None, hydrator=None, composer=None)


def test_normalize_audience_segment_resolves_aliases():
    assert normalize_audience_segment("luxury_buyers") == "luxury_buyers"
    assert normalize_audience_segment("Luxury-Homebuyers") == "luxury_buyers"
    assert normalize_audience_segment("job transferees") == "investors_relocators"
    assert normalize_audience_segment("astronauts") is None
    assert normalize_audience_segment(None) is None


def test_neighborhood_field_follows_audience():
    assert neighborhood_field_for("growing_families") == "neighborhoods_family_list"
    assert neighborhood_field_for("luxury_homebuyers") == "neighborhoods_luxury_list"
    assert neighborhood_field_for("young_professionals") == "neighborhoods_list"
    assert neighborhood_field_for(None) == "neighborhoods_list"


def test_combine_audience_queries_tops_up_to_target():
    assert combine_audience_queries([], ["a", "b", "c"], 2) == ["a", "b"]
    assert combine_audience_queries(["x"], ["a", "b"], 2) == ["x", "a"]
    assert combine_audience_queries(["x", "y", "z"], ["a"], 2) == ["x", "y", "z"]


def test_thin_primary_results_append_fallback_results():
    primary_query = "fine dining michelin tasting menu"
    searcher = FakeSearcher(
        {
            primary_query: [place("Primary")],
            "best local restaurants": [place("Fallback One")],
            "popular restaurant": [place("Fallback Two"), place("Primary")],
        }
    )
    plan = CategoryQueryPlan("dining", [primary_query], set(), 8)

    places = make_builder(searcher).fetch_category_places(SF, plan, None, None)

    assert [p.name for p in places][:3] == ["Primary", "Fallback One", "Fallback Two"]
    assert searcher.calls == [
        ([primary_query], False),
        (["best local restaurants", "popular restaurant"], True),
    ]


def test_enough_primary_results_skip_fallback():
    primary_query = "fine dining michelin tasting menu"
    searcher = FakeSearcher({primary_query: [place("A"), place("B"), place("C")]})
    plan = CategoryQueryPlan("dining", [primary_query], set(), 8)

    places = make_builder(searcher).fetch_category_places(SF, plan, None, None)

    assert [p.name for p in places] == ["A", "B", "C"]
    assert len(searcher.calls) == 1


def test_unknown_audience_builds_empty_delta():
    builder = make_builder(FakeSearcher({}))
    assert builder.build("94110", "astronauts", SF) == {}
