"""
A/B Test Allocation
Deterministic bucketing of callers into relevance experiment variants.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

logger = logging.getLogger(__name__)

BUCKET_COUNT = 100


class RelevanceAlgorithm(Enum):
    """Relevance algorithms an experiment variant can run; values are scoring profile names."""

    STANDARD = "standard"
    INTENT_BOOSTED = "intent"
    USER_PREFERENCE = "preference"
    HYBRID = "hybrid"
    POPULARITY = "popularity"
    RECENCY = "recency"


class ABVariant(BaseModel):
    """One arm of an experiment."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    algorithm: RelevanceAlgorithm
    weight: float = Field(..., ge=0, le=100)
    params: Dict[str, Any] = Field(default_factory=dict)


class ABTest(BaseModel):
    """
    Relevance experiment definition.

    Variant weights should sum to 100; see ABTestAllocator for the fallback
    when they do not.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    description: str = ""
    variants: List[ABVariant] = Field(..., min_length=1)
    start_date: datetime = Field(..., alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    is_active: bool = Field(default=True, alias="isActive")
    analytics_event_name: str = Field(..., alias="analyticsEventName")

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Treat naive datetimes as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def weight_total(self) -> float:
        return sum(v.weight for v in self.variants)

    def is_running(self, now: datetime) -> bool:
        """Active flag set and now within [start_date, end_date]."""
        if not self.is_active or now < self.start_date:
            return False
        return self.end_date is None or now <= self.end_date


class VariantAssignment(BaseModel):
    """Variant chosen for one caller."""

    model_config = ConfigDict(frozen=True)

    test_id: str
    variant_id: str
    algorithm: RelevanceAlgorithm
    params: Dict[str, Any] = Field(default_factory=dict)
    analytics_event_name: str

    @property
    def profile_name(self) -> str:
        return self.algorithm.value


def string_hash(text: str) -> int:
    """
    32-bit polynomial rolling hash (h = h * 31 + code unit), absolute value.

    Works on UTF-16 code units so bucket assignments match clients that
    hash the same key in a browser.
    """
    h = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def bucket_for(user_id: str, test_id: str) -> int:
    """Stable 0-99 bucket for a caller in a test."""
    return string_hash(f"{user_id}-{test_id}") % BUCKET_COUNT


class ABTestAllocator:
    """
    Assign callers to experiment variants.

    The test table is loaded once and read-only afterwards. Assignment
    is a pure function of (user id, test id), so it needs no shared state.
    """

    def __init__(
        self,
        tests: Iterable[ABTest] = (),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize allocator.

        Args:
            tests: Experiment definitions
            clock: Returns the current aware datetime
        """
        self._tests = MappingProxyType({t.id: t for t in tests})
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.validate_weights()
        logger.info(f"Initialized {len(self._tests)} A/B tests")

    @classmethod
    def from_json_file(
        cls, path: Union[str, Path], clock: Optional[Callable[[], datetime]] = None
    ) -> "ABTestAllocator":
        """Load experiment definitions from a JSON array."""
        tests = TypeAdapter(List[ABTest]).validate_json(Path(path).read_text(encoding="utf-8"))
        return cls(tests, clock=clock)

    def validate_weights(self) -> List[str]:
        """
        Warn about tests whose variant weights do not sum to 100.

        Returns:
            IDs of mis-weighted tests
        """
        flagged = []
        for test in self._tests.values():
            total = test.weight_total
            if abs(total - BUCKET_COUNT) > 1e-9:
                flagged.append(test.id)
                logger.warning(
                    f"A/B test '{test.id}' variant weights sum to {total:g}, not {BUCKET_COUNT}; "
                    f"unmatched buckets fall back to variant '{test.variants[0].id}'"
                )
        return flagged

    def get_test(self, test_id: str) -> Optional[ABTest]:
        return self._tests.get(test_id)

    def active_tests(self, now: Optional[datetime] = None) -> List[ABTest]:
        """Tests currently eligible for assignment."""
        now = now or self._clock()
        return [t for t in self._tests.values() if t.is_running(now)]

    def select(
        self, test_id: str, user_id: str, now: Optional[datetime] = None
    ) -> Optional[VariantAssignment]:
        """
        Assign a caller to a variant.

        Args:
            test_id: Experiment ID
            user_id: Stable caller key (user or session id)
            now: Evaluation time (defaults to clock)

        Returns:
            VariantAssignment, or None for unknown or inactive tests
        """
        test = self._tests.get(test_id)
        if test is None or not test.is_running(now or self._clock()):
            return None

        bucket = bucket_for(user_id, test_id)
        variant = test.variants[0]
        cumulative = 0.0
        for candidate in test.variants:
            cumulative += candidate.weight
            if bucket < cumulative:
                variant = candidate
                break

        return VariantAssignment(
            test_id=test.id,
            variant_id=variant.id,
            algorithm=variant.algorithm,
            params=dict(variant.params),
            analytics_event_name=test.analytics_event_name,
        )


def default_ab_tests(now: Optional[datetime] = None) -> List[ABTest]:
    """Built-in relevance experiments, windowed around now."""
    now = now or datetime.now(timezone.utc)
    return [
        ABTest(
            id="search-relevance-test-001",
            name="Basic vs. Intent-Based Relevance",
            description="Standard field boosts against intent-based boosting",
            variants=[
                ABVariant(id="control", algorithm=RelevanceAlgorithm.STANDARD, weight=50),
                ABVariant(
                    id="intent-boosted", algorithm=RelevanceAlgorithm.INTENT_BOOSTED, weight=50
                ),
            ],
            start_date=now - timedelta(days=7),
            end_date=now + timedelta(days=14),
            is_active=True,
            analytics_event_name="search_relevance_test_001",
        ),
        ABTest(
            id="user-preference-test-001",
            name="User Preference Boosting",
            description="Effectiveness of user preference-based boosting",
            variants=[
                ABVariant(id="control", algorithm=RelevanceAlgorithm.STANDARD, weight=33),
                ABVariant(
                    id="preference-light",
                    algorithm=RelevanceAlgorithm.USER_PREFERENCE,
                    weight=33,
                    params={"preference_weight": 0.5},
                ),
                ABVariant(
                    id="preference-heavy",
                    algorithm=RelevanceAlgorithm.USER_PREFERENCE,
                    weight=34,
                    params={"preference_weight": 1.5},
                ),
            ],
            start_date=now - timedelta(days=3),
            end_date=now + timedelta(days=27),
            is_active=True,
            analytics_event_name="user_preference_test_001",
        ),
    ]


def build_analytics_event(
    assignment: VariantAssignment,
    query: Optional[str],
    result_count: int,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Analytics payload for a search served under an experiment variant.

    Args:
        assignment: Variant the caller was assigned
        query: Query text
        result_count: Total matching products
        now: Event time

    Returns:
        Event dict
    """
    now = now or datetime.now(timezone.utc)
    return {
        "event": assignment.analytics_event_name,
        "event_category": "search",
        "event_label": query or "",
        "ab_test_id": assignment.test_id,
        "variant_id": assignment.variant_id,
        "result_count": result_count,
        "timestamp": now.isoformat(),
    }
