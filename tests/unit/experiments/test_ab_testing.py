"""
Tests for A/B test allocation.
"""

import json
import random
from datetime import timedelta

import pytest

from catalog_search.ml.experiments import (
    ABTest,
    ABTestAllocator,
    ABVariant,
    RelevanceAlgorithm,
    bucket_for,
    build_analytics_event,
    default_ab_tests,
    string_hash,
)

from conftest import FIXED_NOW

_rng = random.Random(1234)
SEEDED_USER_IDS = [f"user-{_rng.getrandbits(48):012x}" for _ in range(20)]


def make_test(now, variants=None, **overrides):
    data = dict(
        id="relevance-1",
        name="Relevance",
        variants=variants
        if variants is not None
        else [
            ABVariant(id="control", algorithm=RelevanceAlgorithm.STANDARD, weight=50),
            ABVariant(id="treatment", algorithm=RelevanceAlgorithm.HYBRID, weight=50),
        ],
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=1),
        is_active=True,
        analytics_event_name="relevance_1",
    )
    data.update(overrides)
    return ABTest(**data)


@pytest.fixture
def allocator(fixed_now):
    return ABTestAllocator([make_test(fixed_now)], clock=lambda: fixed_now)


def test_string_hash():
    assert string_hash("") == 0
    assert string_hash("ab") == 3105


def test_string_hash_is_non_negative():
    for text in ["a" * 50, "user-123-search-relevance-test-001", "zzzzzzzzzzzz"]:
        assert string_hash(text) >= 0


def test_string_hash_uses_utf16_code_units():
    # U+1F600 is a surrogate pair: 0xD83D, 0xDE00
    assert string_hash("\U0001F600") == 0xD83D * 31 + 0xDE00


@pytest.mark.parametrize("user_id", SEEDED_USER_IDS)
def test_assignment_is_deterministic(allocator, user_id):
    first = allocator.select("relevance-1", user_id)
    second = allocator.select("relevance-1", user_id)

    assert first == second
    expected = "control" if bucket_for(user_id, "relevance-1") < 50 else "treatment"
    assert first.variant_id == expected


def test_assignment_roughly_follows_weights(allocator):
    rng = random.Random(7)
    users = [f"u{rng.getrandbits(64):x}" for _ in range(2000)]

    control = sum(
        1 for u in users if allocator.select("relevance-1", u).variant_id == "control"
    )

    assert 0.4 < control / len(users) < 0.6


def test_assignment_fields(allocator):
    assignment = allocator.select("relevance-1", "user-1")

    assert assignment.test_id == "relevance-1"
    assert assignment.analytics_event_name == "relevance_1"
    assert assignment.profile_name in ("standard", "hybrid")


def test_unknown_test(allocator):
    assert allocator.select("nope", "user-1") is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"is_active": False},
        {"end_date": FIXED_NOW - timedelta(seconds=1)},
        {"start_date": FIXED_NOW + timedelta(days=1), "end_date": None},
    ],
)
def test_not_running(fixed_now, overrides):
    allocator = ABTestAllocator([make_test(fixed_now, **overrides)], clock=lambda: fixed_now)

    assert allocator.select("relevance-1", "user-1") is None
    assert allocator.active_tests() == []


def test_open_ended_test_runs(fixed_now):
    allocator = ABTestAllocator([make_test(fixed_now, end_date=None)], clock=lambda: fixed_now)
    assert allocator.select("relevance-1", "user-1") is not None


def test_mis_weighted_test_falls_back_to_first_variant(fixed_now, caplog):
    variants = [
        ABVariant(id="a", algorithm=RelevanceAlgorithm.STANDARD, weight=30),
        ABVariant(id="b", algorithm=RelevanceAlgorithm.INTENT_BOOSTED, weight=30),
    ]

    allocator = ABTestAllocator([make_test(fixed_now, variants=variants)], clock=lambda: fixed_now)

    assert allocator.validate_weights() == ["relevance-1"]
    assert "sum to 60" in caplog.text

    user = next(
        u for u in (f"user-{i}" for i in range(1000)) if bucket_for(u, "relevance-1") >= 60
    )
    assert allocator.select("relevance-1", user).variant_id == "a"


def test_variant_weight_bounds():
    with pytest.raises(ValueError):
        ABVariant(id="x", algorithm=RelevanceAlgorithm.STANDARD, weight=101)


def test_test_needs_variants(fixed_now):
    with pytest.raises(ValueError):
        make_test(fixed_now, variants=[], id="empty")


def test_naive_dates_are_utc(fixed_now):
    test = make_test(fixed_now, start_date=fixed_now.replace(tzinfo=None) - timedelta(days=1))
    assert test.start_date.tzinfo is not None
    assert test.is_running(fixed_now)


def test_default_tests(fixed_now):
    allocator = ABTestAllocator(default_ab_tests(fixed_now), clock=lambda: fixed_now)

    assert allocator.validate_weights() == []
    assert [t.id for t in allocator.active_tests()] == [
        "search-relevance-test-001",
        "user-preference-test-001",
    ]

    assignment = allocator.select("user-preference-test-001", "user-42")
    if assignment.variant_id != "control":
        assert assignment.profile_name == "preference"
        assert assignment.params["preference_weight"] in (0.5, 1.5)


def test_from_json_file(tmp_path, fixed_now):
    path = tmp_path / "ab_tests.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "file-test",
                    "name": "From file",
                    "variants": [{"id": "only", "algorithm": "recency", "weight": 100}],
                    "startDate": "2025-01-01T00:00:00Z",
                    "endDate": None,
                    "isActive": True,
                    "analyticsEventName": "file_test",
                }
            ]
        )
    )

    allocator = ABTestAllocator.from_json_file(path, clock=lambda: fixed_now)

    assignment = allocator.select("file-test", "anyone")
    assert assignment.variant_id == "only"
    assert assignment.algorithm is RelevanceAlgorithm.RECENCY


def test_build_analytics_event(allocator, fixed_now):
    assignment = allocator.select("relevance-1", "user-1")

    event = build_analytics_event(assignment, "vegan boots", 12, now=fixed_now)

    assert event == {
        "event": "relevance_1",
        "event_category": "search",
        "event_label": "vegan boots",
        "ab_test_id": "relevance-1",
        "variant_id": assignment.variant_id,
        "result_count": 12,
        "timestamp": fixed_now.isoformat(),
    }
