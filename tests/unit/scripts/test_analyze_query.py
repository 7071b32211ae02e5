"""
Tests for the query analysis script.
"""

import json

import pytest

from catalog_search.api.models.search import SearchRequest
from catalog_search.ml.search import create_search_service
from catalog_search.scripts.analyze_query import main

from conftest import FakeIndexClient


def test_prints_analysis(capsys):
    main(["sustainable dresses under $50", "--limit", "5"])

    output = json.loads(capsys.readouterr().out)

    assert output["intent"]["intent"] == "price_query"
    assert {"type": "price", "value": "0-50", "confidence": 0.9} in output["entities"]
    assert output["scoring_profile"] == "intent"
    assert output["index_request"]["size"] == 6
    assert output["experiment"] is None


def test_filters_match_search_service(capsys, settings):
    query = "sort dresses by rating under $50"
    main([query])
    output = json.loads(capsys.readouterr().out)

    index = FakeIndexClient()
    create_search_service(index, settings=settings).search(SearchRequest(query=query))

    cli_filters = output["index_request"]["query"]["function_score"]["query"]["bool"]["filter"]
    service_filters = index.last_body["query"]["function_score"]["query"]["bool"]["filter"]
    assert output["intent"]["intent"] == "sort"
    assert {"range": {"price": {"gte": 0.0, "lte": 50.0}}} in cli_filters
    assert cli_filters == service_filters


def test_profile_override(capsys):
    main(["linen shirts", "--profile", "recency"])

    output = json.loads(capsys.readouterr().out)
    assert output["scoring_profile"] == "recency"


def test_user_is_bucketed_into_experiment(capsys):
    main(["linen shirts", "--user-id", "user-42"])

    output = json.loads(capsys.readouterr().out)
    assert output["experiment"]["test_id"] == "search-relevance-test-001"
    assert output["scoring_profile"] in ("standard", "intent")


def test_limit_out_of_range():
    with pytest.raises(SystemExit):
        main(["shoes", "--limit", "0"])
