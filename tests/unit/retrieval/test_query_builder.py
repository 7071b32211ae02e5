"""
Tests for index request construction.
"""

import pytest

from catalog_search.ml.retrieval import ProductFilters, SearchQueryBuilder, SortOrder, SortSpec
from catalog_search.ml.retrieval.query_dsl import Exists, FilterWeight, FunctionScore


@pytest.fixture
def builder():
    return SearchQueryBuilder()


def outer(body):
    return body["query"]["function_score"]


def test_request_shape(builder):
    body = builder.build("linen shirt", filters=ProductFilters(max_price=50), limit=20).to_dict()

    assert body["size"] == 21
    assert body["track_total_hits"] is True

    bool_query = outer(body)["query"]["bool"]
    assert {"term": {"isActive": True}} in bool_query["filter"]
    assert {"range": {"price": {"lte": 50}}} in bool_query["filter"]

    multi_match = bool_query["must"][0]["multi_match"]
    assert multi_match["query"] == "linen shirt"
    assert "title^3" in multi_match["fields"]
    assert multi_match["fuzziness"] == "AUTO"

    assert outer(body)["score_mode"] == "sum"
    assert outer(body)["boost_mode"] == "multiply"
    assert len(outer(body)["functions"]) == 3


def test_empty_query_matches_all(builder):
    body = builder.build(None).to_dict()
    assert outer(body)["query"]["bool"]["must"] == [{"match_all": {}}]


def test_default_sort_has_tie_breakers(builder):
    body = builder.build("shoes").to_dict()
    assert body["sort"] == [{"_score": "desc"}, {"createdAt": "desc"}, {"id": "asc"}]


def test_requested_sort(builder):
    body = builder.build("shoes", sort=[SortSpec("price", SortOrder.ASC)]).to_dict()
    assert body["sort"] == [{"price": "asc"}, {"_score": "desc"}, {"id": "asc"}]


def test_cursor_becomes_search_after(builder):
    body = builder.build("shoes", cursor=(1.2, "2025-01-01", "p9")).to_dict()
    assert body["search_after"] == [1.2, "2025-01-01", "p9"]


def test_mismatched_cursor_is_dropped(builder, caplog):
    body = builder.build("shoes", cursor=(1.2, "p9")).to_dict()

    assert "search_after" not in body
    assert "starting from first page" in caplog.text


def test_intent_boosts_override_text_fields(builder):
    clause = builder.text_query("vegan boots", boosts={"name": 5.0, "rating": 2.0})

    fields = dict(clause.fields)
    assert fields["title"] == 5.0
    assert "rating" not in fields


def test_scorer_wraps_text_query(builder):
    def scorer(query):
        return FunctionScore(query, (FilterWeight(Exists("title"), 2.0),))

    body = builder.build("shoes", scorer=scorer).to_dict()

    must = outer(body)["query"]["bool"]["must"][0]
    assert must["function_score"]["functions"] == [
        {"filter": {"exists": {"field": "title"}}, "weight": 2.0}
    ]
    assert "multi_match" in must["function_score"]["query"]


def test_aggregations(builder):
    aggs = builder.build("shoes").to_dict()["aggs"]

    assert aggs["categories"]["terms"]["field"] == "categories.keyword"
    assert aggs["values"]["terms"]["size"] == 50
    assert aggs["price_ranges"]["range"]["ranges"] == [
        {"to": 25},
        {"from": 25, "to": 50},
        {"from": 50, "to": 100},
        {"from": 100, "to": 200},
        {"from": 200},
    ]
    assert set(aggs) >= {"avg_price", "min_price", "max_price"}


def test_aggregations_can_be_skipped(builder):
    assert "aggs" not in builder.build("shoes", include_aggregations=False).to_dict()


def test_limit_must_be_positive(builder):
    with pytest.raises(ValueError):
        builder.build("shoes", limit=0)
