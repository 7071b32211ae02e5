"""
Scoring Profiles
Named relevance profiles and the engine that composes them into function-score queries.
"""

import copy
import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..caching.preference_cache import PreferenceCache
from ..config import ScoringConfig, get_search_config
from ..errors import PreferenceLookupError
from ..nlp.entity_extraction import EntityType, ExtractedEntity
from ..nlp.intent_detection import Intent, IntentLabel
from ..personalization.preferences import UserContext, UserPreferences
from .query_dsl import (
    BoostMode,
    Clause,
    DecayFunction,
    Exists,
    FieldModifier,
    FieldValueFactor,
    FilterWeight,
    FunctionScore,
    Match,
    Range,
    ScoreMode,
    ScoringFunction,
    Terms,
    index_field,
)

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "standard"


@dataclass(frozen=True)
class ScoringProfile:
    """
    Immutable relevance profile.

    boost_factors maps logical field names to the weight of a
    filter(exists(field)) function. Use derive() to build a variant.
    """

    name: str
    boost_factors: Mapping[str, float]
    functions: Tuple[ScoringFunction, ...] = ()
    score_mode: ScoreMode = ScoreMode.SUM
    boost_mode: BoostMode = BoostMode.MULTIPLY
    preference_aware: bool = False
    intent_aware: bool = False

    def __post_init__(self):
        object.__setattr__(self, "boost_factors", MappingProxyType(dict(self.boost_factors)))
        object.__setattr__(self, "functions", tuple(self.functions))

    def derive(self, **changes: Any) -> "ScoringProfile":
        """Copy of this profile with fields replaced."""
        if "boost_factors" in changes:
            changes["boost_factors"] = dict(changes["boost_factors"])
        return replace(self, **changes)

    @property
    def is_empty(self) -> bool:
        return not self.boost_factors and not self.functions


def _recency_decay(scale: str, offset: str, weight: float) -> DecayFunction:
    return DecayFunction("createdAt", scale=scale, offset=offset, decay=0.5, weight=weight)


BUILTIN_PROFILES: Tuple[ScoringProfile, ...] = (
    ScoringProfile(
        name="standard",
        boost_factors={
            "name": 3.0,
            "description": 1.0,
            "categories": 2.0,
            "brand": 1.5,
            "tags": 1.2,
        },
    ),
    ScoringProfile(
        name="popularity",
        boost_factors={"name": 2.0, "description": 0.8, "categories": 1.5, "brand": 1.2},
        functions=(
            FieldValueFactor("viewCount", factor=0.1, modifier=FieldModifier.LOG1P, weight=1.0),
            FieldValueFactor("rating", factor=1.0, modifier=FieldModifier.SQRT, weight=2.0),
        ),
        score_mode=ScoreMode.SUM,
        preference_aware=True,
    ),
    ScoringProfile(
        name="recency",
        boost_factors={"name": 2.0, "description": 1.0, "categories": 1.5},
        functions=(_recency_decay("30d", "5d", 2.0),),
        score_mode=ScoreMode.MULTIPLY,
    ),
    ScoringProfile(
        name="preference",
        boost_factors={"name": 2.0, "description": 0.8},
        preference_aware=True,
    ),
    ScoringProfile(
        name="intent",
        boost_factors={"name": 2.0, "description": 0.8},
        intent_aware=True,
    ),
    ScoringProfile(
        name="hybrid",
        boost_factors={"name": 2.0, "description": 0.8, "categories": 1.5, "brand": 1.2},
        functions=(
            FieldValueFactor("rating", factor=0.5, modifier=FieldModifier.SQRT, weight=1.0),
            _recency_decay("60d", "1d", 1.0),
        ),
        preference_aware=True,
        intent_aware=True,
    ),
)


class ScoringProfileRegistry:
    """
    Read-only lookup of scoring profiles by name.

    Built once at startup; with_profile() returns a new registry.
    """

    def __init__(self, profiles: Iterable[ScoringProfile] = BUILTIN_PROFILES):
        table = {p.name: p for p in profiles}
        if DEFAULT_PROFILE not in table:
            raise ValueError(f"Registry must contain the '{DEFAULT_PROFILE}' profile")
        self._profiles: Mapping[str, ScoringProfile] = MappingProxyType(table)

    def __contains__(self, name: str) -> bool:
        return name in self._profiles

    def names(self) -> List[str]:
        return list(self._profiles)

    def get(self, name: Optional[str]) -> ScoringProfile:
        """
        Get a profile, falling back to 'standard' for unknown names.

        Args:
            name: Profile name

        Returns:
            ScoringProfile
        """
        profile = self._profiles.get(name) if name else None
        if profile is None:
            logger.warning(f"Scoring profile '{name}' not found, using '{DEFAULT_PROFILE}'")
            return self._profiles[DEFAULT_PROFILE]
        return profile

    def with_profile(self, profile: ScoringProfile) -> "ScoringProfileRegistry":
        """New registry with a profile added or replaced."""
        return ScoringProfileRegistry({**self._profiles, profile.name: profile}.values())


class ScoringProfileEngine:
    """
    Compose a base query with a scoring profile.

    Composition never mutates the base query or the registry; every call
    builds its own function list, so concurrent requests cannot see each
    other's dynamic boosts.
    """

    def __init__(
        self,
        registry: Optional[ScoringProfileRegistry] = None,
        preference_cache: Optional[PreferenceCache] = None,
        config: Optional[ScoringConfig] = None,
    ):
        """
        Initialize scoring engine.

        Args:
            registry: Profile registry (defaults to the built-in profiles)
            preference_cache: Source of user preferences for preference-aware profiles
            config: Scoring configuration (defaults to global config)
        """
        self.registry = registry or ScoringProfileRegistry()
        self.preference_cache = preference_cache
        self.config = config or get_search_config().scoring

    def get_profile(self, name: Optional[str]) -> ScoringProfile:
        return self.registry.get(name)

    def profile_names(self) -> List[str]:
        return self.registry.names()

    def apply(
        self,
        base_query: Clause,
        profile_name: Optional[str],
        user: Optional[UserContext] = None,
        intent: Optional[Intent] = None,
        entities: Optional[Sequence[ExtractedEntity]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Clause:
        """
        Build the scored query for a profile.

        Args:
            base_query: Query to score
            profile_name: Profile name; unknown names fall back to 'standard'
            user: Caller identity (enables preference boosts)
            intent: Detected intent (enables intent and entity boosts)
            entities: Extracted entities
            params: Experiment variant parameters (preference_weight)

        Returns:
            FunctionScore wrapping a copy of base_query, or the copy itself
            when there is nothing to score with
        """
        profile = self.registry.get(profile_name)
        query = copy.deepcopy(base_query)
        params = params or {}

        functions: List[ScoringFunction] = [
            FilterWeight(Exists(index_field(name)), weight)
            for name, weight in profile.boost_factors.items()
        ]
        functions.extend(profile.functions)

        if profile.preference_aware and user is not None and user.user_id:
            preference_weight = float(params.get("preference_weight", 1.0))
            functions.extend(self._preference_functions(user, preference_weight))

        if profile.intent_aware and intent is not None:
            functions.extend(self._intent_functions(intent))
            functions.extend(self._entity_functions(entities or ()))

        if not functions:
            return query

        return FunctionScore(
            query=query,
            functions=tuple(functions),
            score_mode=profile.score_mode,
            boost_mode=profile.boost_mode,
        )

    def scorer(
        self,
        profile_name: Optional[str],
        user: Optional[UserContext] = None,
        intent: Optional[Intent] = None,
        entities: Optional[Sequence[ExtractedEntity]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Callable[[Clause], Clause]:
        """Bind apply() arguments into a callable for the query builder."""

        def score(base_query: Clause) -> Clause:
            return self.apply(base_query, profile_name, user, intent, entities, params)

        return score

    def _load_preferences(self, user: UserContext) -> Optional[UserPreferences]:
        if self.preference_cache is None:
            return None
        try:
            return self.preference_cache.get(user.user_id, session_id=user.session_id)
        except PreferenceLookupError as e:
            logger.error(f"Skipping preference boosts: {e.message}")
            return None

    def _preference_functions(self, user: UserContext, scale: float) -> List[ScoringFunction]:
        preferences = self._load_preferences(user)
        if preferences is None:
            return []

        cfg = self.config
        functions: List[ScoringFunction] = []

        for category, weight in preferences.categories.items():
            if weight > 0:
                functions.append(
                    FilterWeight(
                        Match("categories", category),
                        weight * cfg.category_preference_multiplier * scale,
                    )
                )
        for brand, weight in preferences.brands.items():
            if weight > 0:
                functions.append(
                    FilterWeight(
                        Match("brandName", brand), weight * cfg.brand_preference_multiplier * scale
                    )
                )
        for value, weight in preferences.values.items():
            if weight > 0:
                functions.append(
                    FilterWeight(
                        Match("values", value), weight * cfg.value_preference_multiplier * scale
                    )
                )
        for bucket in preferences.price_ranges:
            if bucket.weight > 0:
                functions.append(
                    FilterWeight(
                        Range("price", gte=bucket.min, lte=bucket.max), bucket.weight * scale
                    )
                )

        viewed = preferences.recently_viewed_ids
        if viewed:
            functions.append(
                FilterWeight(Terms("id", tuple(viewed)), cfg.recently_viewed_weight * scale)
            )

        return functions

    def _intent_functions(self, intent: Intent) -> List[ScoringFunction]:
        weight = self.config.intent_exists_weight
        label = intent.label

        if label == IntentLabel.CATEGORY_BROWSE:
            return [FilterWeight(Exists("categories"), weight)]
        if label == IntentLabel.BRAND_SPECIFIC:
            return [FilterWeight(Exists("brandName"), weight)]
        if label == IntentLabel.VALUE_DRIVEN:
            return [FilterWeight(Exists("values"), weight)]
        if label == IntentLabel.RECOMMENDATION:
            return [
                FieldValueFactor("rating", factor=2.0, modifier=FieldModifier.SQRT, missing=1),
                FieldValueFactor(
                    "reviewCount", factor=0.1, modifier=FieldModifier.LOG1P, missing=1
                ),
            ]
        return []

    def _entity_functions(self, entities: Sequence[ExtractedEntity]) -> List[ScoringFunction]:
        functions: List[ScoringFunction] = []
        for entity in entities:
            if entity.confidence < self.config.entity_min_confidence:
                continue
            multiplier = self.config.entity_multipliers.get(entity.type.value)
            field_name = ENTITY_BOOST_FIELDS.get(entity.type)
            if multiplier is None or field_name is None:
                continue
            functions.append(
                FilterWeight(Match(field_name, entity.value), entity.confidence * multiplier)
            )
        return functions


# Entity type -> field matched by the entity boost
ENTITY_BOOST_FIELDS: Dict[EntityType, str] = {
    EntityType.CATEGORY: "categories",
    EntityType.BRAND: "brandName",
    EntityType.VALUE: "values",
    EntityType.COLOR: "attributes.color",
    EntityType.MATERIAL: "attributes.material",
}
