"""
Tests for scoring profiles and the scoring profile engine.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from catalog_search.ml.caching import PreferenceCache
from catalog_search.ml.nlp import EntityType, ExtractedEntity, Intent, IntentLabel
from catalog_search.ml.personalization import UserContext
from catalog_search.ml.retrieval.query_dsl import (
    Exists,
    FieldValueFactor,
    FilterWeight,
    FunctionScore,
    Match,
    MultiMatch,
    Range,
    Terms,
)
from catalog_search.ml.retrieval.scoring_profiles import (
    BUILTIN_PROFILES,
    ScoringProfileEngine,
    ScoringProfileRegistry,
)

BASE = MultiMatch("vegan boots", (("title", 3.0), ("description", 1.5)))


@pytest.fixture
def engine(preference_store):
    return ScoringProfileEngine(preference_cache=PreferenceCache(preference_store))


def functions_of(clause):
    assert isinstance(clause, FunctionScore)
    return list(clause.functions)


class TestRegistry:
    def test_builtin_profiles(self):
        assert ScoringProfileRegistry().names() == [
            "standard",
            "popularity",
            "recency",
            "preference",
            "intent",
            "hybrid",
        ]

    def test_unknown_profile_falls_back_to_standard(self, caplog):
        profile = ScoringProfileRegistry().get("does-not-exist")

        assert profile.name == "standard"
        assert "not found" in caplog.text

    def test_profiles_are_immutable(self):
        standard = ScoringProfileRegistry().get("standard")

        with pytest.raises(TypeError):
            standard.boost_factors["name"] = 10.0

    def test_with_profile_returns_new_registry(self):
        registry = ScoringProfileRegistry()
        custom = registry.get("standard").derive(name="custom", boost_factors={"name": 9.0})

        extended = registry.with_profile(custom)

        assert "custom" in extended
        assert "custom" not in registry
        assert registry.get("standard").boost_factors["name"] == 3.0

    def test_registry_requires_standard(self):
        with pytest.raises(ValueError):
            ScoringProfileRegistry([p for p in BUILTIN_PROFILES if p.name != "standard"])


class TestApply:
    def test_standard_profile_exists_boosts(self, engine):
        functions = functions_of(engine.apply(BASE, "standard"))

        assert FilterWeight(Exists("title"), 3.0) in functions
        assert FilterWeight(Exists("brandName"), 1.5) in functions

    def test_base_query_is_not_mutated(self, engine):
        scored = engine.apply(BASE, "hybrid", intent=Intent(IntentLabel.VALUE_DRIVEN, 0.9))

        assert scored.query == BASE
        assert scored.query is not BASE
        assert engine.apply(BASE, "hybrid") == engine.apply(BASE, "hybrid")

    def test_popularity_functions(self, engine):
        scored = engine.apply(BASE, "popularity")

        assert scored.score_mode.value == "sum"
        assert any(
            isinstance(f, FieldValueFactor) and f.field == "viewCount" for f in scored.functions
        )

    def test_preference_boosts(self, engine):
        functions = functions_of(engine.apply(BASE, "preference", user=UserContext("user-a")))

        assert FilterWeight(Match("categories", "dresses"), 3.0) in functions
        assert FilterWeight(Match("brandName", "avnu"), 1.3) in functions
        assert FilterWeight(Match("values", "vegan"), 0.6) in functions
        assert FilterWeight(Range("price", gte=20, lte=60), 1.5) in functions
        assert FilterWeight(Terms("id", ("p7", "p9")), 2.0) in functions
        assert not any(
            isinstance(f, FilterWeight) and f.filter == Match("categories", "shoes")
            for f in functions
        )

    def test_preference_weight_param_scales_boosts(self, engine):
        functions = functions_of(
            engine.apply(
                BASE, "preference", user=UserContext("user-a"), params={"preference_weight": 0.5}
            )
        )

        assert FilterWeight(Match("categories", "dresses"), 1.5) in functions

    def test_no_preference_boosts_for_unaware_profile(self, engine):
        functions = functions_of(engine.apply(BASE, "standard", user=UserContext("user-a")))
        assert not any(isinstance(f, FilterWeight) and isinstance(f.filter, Match) for f in functions)

    def test_preference_lookup_failure_is_skipped(self, caplog):
        class BrokenStore:
            def get_preferences(self, user_id):
                raise RuntimeError("store down")

        engine = ScoringProfileEngine(preference_cache=PreferenceCache(BrokenStore()))

        functions = functions_of(engine.apply(BASE, "preference", user=UserContext("user-a")))

        assert all(isinstance(f.filter, Exists) for f in functions)
        assert "Skipping preference boosts" in caplog.text

    def test_intent_and_entity_boosts(self, engine):
        entities = [
            ExtractedEntity(EntityType.VALUE, "sustainable", 0.9),
            ExtractedEntity(EntityType.CATEGORY, "dresses", 0.8),
            ExtractedEntity(EntityType.BRAND, "maybe", 0.4),
        ]

        functions = functions_of(
            engine.apply(
                BASE, "intent", intent=Intent(IntentLabel.VALUE_DRIVEN, 0.9), entities=entities
            )
        )

        assert FilterWeight(Exists("values"), 3.0) in functions
        assert FilterWeight(Match("values", "sustainable"), pytest.approx(1.35)) in functions
        assert FilterWeight(Match("categories", "dresses"), 1.6) in functions
        assert not any(
            isinstance(f, FilterWeight) and f.filter == Match("brandName", "maybe")
            for f in functions
        )

    def test_recommendation_intent_scores_by_rating(self, engine):
        functions = functions_of(
            engine.apply(BASE, "intent", intent=Intent(IntentLabel.RECOMMENDATION, 0.9))
        )

        fields = [f.field for f in functions if isinstance(f, FieldValueFactor)]
        assert fields == ["rating", "reviewCount"]

    def test_intent_ignored_by_unaware_profile(self, engine):
        functions = functions_of(
            engine.apply(BASE, "standard", intent=Intent(IntentLabel.VALUE_DRIVEN, 0.9))
        )
        assert FilterWeight(Exists("values"), 3.0) not in functions

    def test_empty_profile_returns_copy(self):
        registry = ScoringProfileRegistry().with_profile(
            ScoringProfileRegistry().get("standard").derive(name="bare", boost_factors={})
        )
        engine = ScoringProfileEngine(registry=registry)

        scored = engine.apply(BASE, "bare")

        assert scored == BASE
        assert scored is not BASE

    def test_concurrent_requests_do_not_share_boosts(self, engine):
        def score(user_id):
            return engine.apply(BASE, "popularity", user=UserContext(user_id))

        users = ["user-a", "user-b"] * 25
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(score, users))

        for user_id, scored in zip(users, results):
            matched = {
                f.filter.query
                for f in scored.functions
                if isinstance(f, FilterWeight) and isinstance(f.filter, Match)
            }
            if user_id == "user-a":
                assert "dresses" in matched and "jewelry" not in matched
            else:
                assert matched == {"jewelry"}

    def test_scorer_binds_arguments(self, engine):
        scorer = engine.scorer("preference", user=UserContext("user-b"))
        assert scorer(BASE) == engine.apply(BASE, "preference", user=UserContext("user-b"))
