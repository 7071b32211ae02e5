"""
Tests for the search service pipeline.
"""

import json
from datetime import timedelta

import pytest

from catalog_search.api.models.search import (
    PaginationInput,
    SearchFilters,
    SearchRequest,
    SortInput,
)
from catalog_search.config import SearchSettings
from catalog_search.ml.caching import PreferenceCache
from catalog_search.ml.errors import (
    IndexQueryError,
    IndexUnavailableError,
    InvalidRequestError,
    QueryFailedError,
)
from catalog_search.ml.experiments import ABTest, ABTestAllocator, ABVariant, RelevanceAlgorithm
from catalog_search.ml.nlp import EntityType, ExtractedEntity, IntentSearchParameters
from catalog_search.ml.retrieval import CursorPaginator, ProductFilters
from catalog_search.ml.retrieval.scoring_profiles import ScoringProfileEngine
from catalog_search.ml.search import SearchService, create_search_service, merge_filters

from conftest import FIXED_NOW, FakeIndexClient, make_hit


class RecordingSink:
    def __init__(self):
        self.events = []

    def track(self, event):
        self.events.append(event)


class FailingSink:
    def track(self, event):
        raise RuntimeError("analytics down")


def index_response(hits, total=None, aggregations=None):
    response = {"hits": {"hits": hits, "total": {"value": len(hits) if total is None else total}}}
    if aggregations is not None:
        response["aggregations"] = aggregations
    return response


def bool_filters(body):
    return body["query"]["function_score"]["query"]["bool"]["filter"]


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_service(settings, classifier, preference_store, sink):
    def build(index_client, **overrides):
        kwargs = dict(
            settings=settings,
            classifier=classifier,
            scoring_engine=ScoringProfileEngine(
                preference_cache=PreferenceCache(preference_store)
            ),
            analytics=sink,
        )
        kwargs.update(overrides)
        return SearchService(index_client, **kwargs)

    return build


class TestSearch:
    def test_price_query_end_to_end(self, make_service, sink):
        hits = [make_hit(0, score=3.0), make_hit(1, score=2.0), make_hit(2, score=1.0)]
        index = FakeIndexClient(index_response(hits, total=3))
        service = make_service(index)

        response = service.search(
            SearchRequest(
                query="sustainable dresses under $50", pagination=PaginationInput(limit=2)
            )
        )

        body = index.last_body
        assert index.calls[0][0] == "products-test"
        assert body["size"] == 3
        assert {"range": {"price": {"gte": 0.0, "lte": 50.0}}} in bool_filters(body)
        assert body["sort"] == [{"price": "asc"}, {"_score": "desc"}, {"id": "asc"}]

        assert [r.product_id for r in response.results] == ["p0", "p1"]
        assert [r.rank for r in response.results] == [0, 1]
        assert response.pagination.total == 3
        assert response.has_more
        assert CursorPaginator().decode(response.next_cursor) == tuple(hits[1]["sort"])

        assert response.analysis.intent == "price_query"
        assert response.analysis.scoring_profile == "intent"
        assert {(e.type, e.value) for e in response.analysis.entities} == {
            (EntityType.CATEGORY.value, "dresses"),
            (EntityType.VALUE.value, "sustainable"),
            (EntityType.PRICE.value, "0-50"),
        }
        assert [(f.field, f.value, f.source) for f in response.applied_filters] == [
            ("min_price", 0.0, "entity"),
            ("max_price", 50.0, "entity"),
        ]

        assert sink.events[0]["event"] == "search_performed"
        assert sink.events[0]["intent"] == "price_query"
        assert sink.events[0]["result_count"] == 3

    def test_entity_boosts_reach_index_request(self, make_service):
        index = FakeIndexClient()
        make_service(index).search(SearchRequest(query="sustainable dresses under $50"))

        serialized = json.dumps(index.last_body)
        assert '{"match": {"values": "sustainable"}}' in serialized

    def test_next_page_uses_cursor(self, make_service):
        hits = [make_hit(i) for i in range(3)]
        index = FakeIndexClient(index_response(hits))
        service = make_service(index)

        first = service.search(SearchRequest(query="linen", pagination=PaginationInput(limit=2)))
        service.search(
            SearchRequest(
                query="linen", pagination=PaginationInput(limit=2, cursor=first.next_cursor)
            )
        )

        assert index.last_body["search_after"] == hits[1]["sort"]

    def test_malformed_cursor_restarts(self, make_service, caplog):
        index = FakeIndexClient()

        make_service(index).search(
            SearchRequest(query="linen", pagination=PaginationInput(cursor="@@not-a-cursor@@"))
        )

        assert "search_after" not in index.last_body
        assert "Ignoring malformed cursor" in caplog.text

    def test_request_filters_win_over_intent(self, make_service):
        index = FakeIndexClient()

        response = make_service(index).search(
            SearchRequest(query="browse dresses", filters=SearchFilters(categories=["skirts"]))
        )

        assert response.analysis.intent == "category_browse"
        assert {"terms": {"categories.keyword": ["skirts"]}} in bool_filters(index.last_body)
        assert [(f.field, f.value, f.source) for f in response.applied_filters] == [
            ("categories", ["skirts"], "request")
        ]

    def test_request_sort(self, make_service):
        index = FakeIndexClient()

        make_service(index).search(
            SearchRequest(query="boots", sort=SortInput(field="name", order="asc"))
        )

        assert index.last_body["sort"][0] == {"title": "asc"}

    def test_empty_query_skips_understanding(self, make_service, sink):
        index = FakeIndexClient()

        response = make_service(index).search(SearchRequest())

        must = index.last_body["query"]["function_score"]["query"]["bool"]["must"]
        assert must[0]["function_score"]["query"] == {"match_all": {}}
        assert response.analysis is None
        assert sink.events[0]["query"] == ""

    def test_facets_and_price_stats(self, make_service):
        aggregations = {
            "values": {"buckets": [{"key": "Material: Cotton", "doc_count": 7}]},
            "avg_price": {"value": 30.0},
            "min_price": {"value": 10.0},
            "max_price": {"value": 50.0},
        }
        index = FakeIndexClient(index_response([make_hit(1)], aggregations=aggregations))

        response = make_service(index).search(SearchRequest(query="shirts"))

        assert response.facets[0].model_dump() == {
            "name": "material",
            "display_name": "Material",
            "values": [{"value": "Cotton", "count": 7}],
        }
        assert response.price_stats.model_dump() == {"avg": 30.0, "min": 10.0, "max": 50.0}

    def test_preference_profile_for_known_user(self, make_service):
        index = FakeIndexClient()

        make_service(index).search(
            SearchRequest(query="summer", user_id="user-a", scoring_profile="preference")
        )

        serialized = json.dumps(index.last_body)
        assert '{"filter": {"match": {"categories": "dresses"}}, "weight": 3.0}' in serialized

    def test_limit_above_maximum(self, make_service, settings):
        capped = settings.model_copy(update={"max_page_size": 10})
        service = make_service(FakeIndexClient(), settings=capped)

        with pytest.raises(InvalidRequestError) as exc_info:
            service.search(SearchRequest(query="boots", pagination=PaginationInput(limit=50)))

        assert exc_info.value.status_code == 400


class TestIndexFailures:
    def test_connection_error(self, make_service, caplog):
        service = make_service(FakeIndexClient(error=ConnectionError("refused")))

        with pytest.raises(IndexUnavailableError) as exc_info:
            service.search(SearchRequest(query="boots"))

        error = exc_info.value
        assert error.status_code == 503
        assert isinstance(error.__cause__, ConnectionError)
        assert error.details["index"] == "products-test"
        assert "unavailable" in caplog.text

    def test_query_failure(self, make_service):
        service = make_service(FakeIndexClient(error=RuntimeError("parse error")))

        with pytest.raises(QueryFailedError) as exc_info:
            service.search(SearchRequest(query="boots"))

        assert isinstance(exc_info.value, IndexQueryError)
        assert exc_info.value.status_code == 502


class TestAnalytics:
    def test_analytics_failure_is_swallowed(self, make_service, caplog):
        service = make_service(FakeIndexClient(), analytics=FailingSink())

        response = service.search(SearchRequest(query="boots"))

        assert response.pagination.total == 0
        assert "Failed to track analytics event" in caplog.text

    def test_experiment_assignment(self, make_service, settings, sink):
        allocator = ABTestAllocator(
            [
                ABTest(
                    id="relevance-1",
                    name="Relevance",
                    variants=[
                        ABVariant(id="hybrid-only", algorithm=RelevanceAlgorithm.HYBRID, weight=100)
                    ],
                    start_date=FIXED_NOW - timedelta(days=1),
                    end_date=None,
                    analytics_event_name="relevance_1",
                )
            ]
        )
        configured = settings.model_copy(update={"default_ab_test_id": "relevance-1"})
        service = make_service(FakeIndexClient(), settings=configured, allocator=allocator)

        response = service.search(SearchRequest(query="boots", session_id="s-1"))

        assert response.experiment.variant_id == "hybrid-only"
        assert response.analysis.scoring_profile == "hybrid"
        assert sink.events[0]["event"] == "relevance_1"
        assert sink.events[0]["variant_id"] == "hybrid-only"


class TestCreateSearchService:
    def test_startup_wiring(self, settings, preference_store):
        index = FakeIndexClient(
            aggregation_response={
                "aggregations": {
                    "category_terms": {"buckets": [{"key": "Yoga Mats", "doc_count": 3}]},
                    "brand_terms": {"buckets": []},
                }
            }
        )
        configured = settings.model_copy(
            update={"refresh_dictionaries_on_startup": True, "enable_default_ab_tests": True}
        )

        service = create_search_service(
            index, settings=configured, preference_store=preference_store, analytics=RecordingSink()
        )

        assert "yoga mats" in service.extractor.dictionary(EntityType.CATEGORY)
        assert not service.classifier.is_degraded
        assert len(service.allocator.active_tests()) == 2
        assert service.scoring_engine.preference_cache is not None

    def test_refresh_failure_is_not_fatal(self, settings, caplog):
        configured = settings.model_copy(update={"refresh_dictionaries_on_startup": True})

        service = create_search_service(
            FakeIndexClient(error=TimeoutError("slow")), settings=configured
        )

        assert "seed dictionaries" in caplog.text
        assert service.scoring_engine.preference_cache is None

    def test_ab_tests_from_file(self, settings, tmp_path):
        path = tmp_path / "tests.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": "file-test",
                        "name": "File",
                        "variants": [{"id": "v", "algorithm": "popularity", "weight": 100}],
                        "startDate": "2020-01-01T00:00:00Z",
                        "analyticsEventName": "file_test",
                    }
                ]
            )
        )
        configured = settings.model_copy(update={"ab_tests_path": str(path)})

        service = create_search_service(FakeIndexClient(), settings=configured)

        assert service.allocator.get_test("file-test") is not None

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("SEARCH_INDEX_NAME", "catalog")
        monkeypatch.setenv("SEARCH_MAX_PAGE_SIZE", "50")

        loaded = SearchSettings()

        assert loaded.index_name == "catalog"
        assert loaded.max_page_size == 50


class TestMergeFilters:
    def test_explicit_price_entity_narrows(self):
        entities = [ExtractedEntity(EntityType.PRICE, "0-50", 0.9)]

        filters = merge_filters(IntentSearchParameters(), entities)

        assert (filters.min_price, filters.max_price) == (0.0, 50.0)

    def test_qualitative_price_entity_does_not_narrow(self):
        entities = [ExtractedEntity(EntityType.PRICE, "0-50", 0.7)]

        filters = merge_filters(IntentSearchParameters(), entities)

        assert filters.min_price is None and filters.max_price is None

    def test_request_filters_win(self):
        params = IntentSearchParameters(filters=ProductFilters(categories=["dresses"]))

        filters = merge_filters(params, [], ProductFilters(categories=["skirts"]))

        assert filters.categories == ["skirts"]

    def test_sort_query_keeps_entity_price_bound(self, make_service):
        index = FakeIndexClient()

        response = make_service(index).search(
            SearchRequest(query="sort dresses by rating under $50")
        )

        assert response.analysis.intent == "sort"
        assert {"range": {"price": {"gte": 0.0, "lte": 50.0}}} in bool_filters(index.last_body)

    def test_price_intent_narrows_on_qualitative_band(self, make_service):
        index = FakeIndexClient()

        response = make_service(index).search(SearchRequest(query="how much are cheap candles"))

        assert response.analysis.intent == "price_query"
        assert {"range": {"price": {"gte": 0.0, "lte": 50.0}}} in bool_filters(index.last_body)
        assert ("max_price", 50.0, "intent") in [
            (f.field, f.value, f.source) for f in response.applied_filters
        ]
