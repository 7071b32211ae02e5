"""
Pytest configuration and shared fixtures
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_search.config import SearchSettings, reset_settings
from catalog_search.ml.config import reset_config
from catalog_search.ml.nlp import IntentClassifier
from catalog_search.ml.personalization import InMemoryPreferenceStore, UserPreferences

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeIndexClient:
    """Index client that records request bodies and returns a canned response."""

    def __init__(self, response=None, error=None, aggregation_response=None):
        self.response = response or {"hits": {"hits": [], "total": {"value": 0}}}
        self.error = error
        self.aggregation_response = aggregation_response
        self.calls = []

    def search(self, index, body):
        self.calls.append((index, body))
        if self.error is not None:
            raise self.error
        if body.get("size") == 0 and self.aggregation_response is not None:
            return self.aggregation_response
        return self.response

    @property
    def last_body(self):
        return self.calls[-1][1]


def make_hit(i, score=1.0, created_at="2025-05-01T00:00:00Z", **source):
    """Index hit for product p<i>."""
    doc = {
        "id": f"p{i}",
        "title": f"Product {i}",
        "price": 10.0 + i,
        "categories": ["dresses"],
        "inStock": True,
        "createdAt": created_at,
    }
    doc.update(source)
    return {"_id": doc["id"], "_score": score, "_source": doc, "sort": [score, created_at, doc["id"]]}


@pytest.fixture(autouse=True)
def reset_globals():
    """Isolate global settings and config between tests."""
    reset_settings()
    reset_config()
    yield
    reset_settings()
    reset_config()


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def settings():
    """Settings that avoid any network access at startup."""
    return SearchSettings(
        index_name="products-test",
        refresh_dictionaries_on_startup=False,
        default_scoring_profile="intent",
        default_ab_test_id=None,
        enable_default_ab_tests=False,
        preference_cache_backend="memory",
    )


@pytest.fixture(scope="session")
def classifier():
    """Trained intent classifier (training runs once per session)."""
    return IntentClassifier()


@pytest.fixture
def fake_index():
    return FakeIndexClient()


@pytest.fixture
def preference_store():
    return InMemoryPreferenceStore(
        {
            "user-a": UserPreferences(
                user_id="user-a",
                categories={"dresses": 2.0, "shoes": -1.0},
                brands={"avnu": 1.0},
                values={"vegan": 0.5},
                price_ranges=[{"min": 20, "max": 60, "weight": 1.5}],
                recently_viewed_products=[{"product_id": "p7"}, {"product_id": "p9"}],
            ),
            "user-b": UserPreferences(
                user_id="user-b",
                categories={"jewelry": 1.0},
            ),
        }
    )
