"""
Index Query DSL
Typed, immutable clause builders that serialize to the index's JSON query language.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class ScoreMode(Enum):
    """How function scores combine with each other."""

    SUM = "sum"
    MULTIPLY = "multiply"
    AVG = "avg"
    FIRST = "first"
    MAX = "max"
    MIN = "min"


class BoostMode(Enum):
    """How the combined function score combines with the query score."""

    MULTIPLY = "multiply"
    SUM = "sum"
    REPLACE = "replace"
    AVG = "avg"
    MAX = "max"
    MIN = "min"


class FieldModifier(Enum):
    """Modifiers applied to a field value before it is used as a score."""

    NONE = "none"
    LOG = "log"
    LOG1P = "log1p"
    LOG2P = "log2p"
    LN1P = "ln1p"
    SQUARE = "square"
    SQRT = "sqrt"
    RECIPROCAL = "reciprocal"


class SortOrder(Enum):
    """Sort directions."""

    ASC = "asc"
    DESC = "desc"


class Clause:
    """Base class for query clauses."""

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class MatchAll(Clause):
    """Matches every document."""

    def to_dict(self) -> Dict[str, Any]:
        return {"match_all": {}}


@dataclass(frozen=True)
class MultiMatch(Clause):
    """
    Full-text match across several boosted fields.

    Example:
        MultiMatch("linen shirt", (("title", 3.0), ("description", 1.5)), fuzziness="AUTO")
    """

    query: str
    fields: Tuple[Tuple[str, float], ...]
    type: str = "best_fields"
    fuzziness: Optional[str] = None
    prefix_length: Optional[int] = None
    tie_breaker: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "query": self.query,
            "fields": [_boosted_field(name, boost) for name, boost in self.fields],
            "type": self.type,
        }
        if self.fuzziness is not None:
            body["fuzziness"] = self.fuzziness
        if self.prefix_length is not None:
            body["prefix_length"] = self.prefix_length
        if self.tie_breaker is not None:
            body["tie_breaker"] = self.tie_breaker
        return {"multi_match": body}


@dataclass(frozen=True)
class Match(Clause):
    """Analyzed match on a single field."""

    field: str
    query: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"match": {self.field: self.query}}


@dataclass(frozen=True)
class Term(Clause):
    """Exact match on a single value."""

    field: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"term": {self.field: self.value}}


@dataclass(frozen=True)
class Terms(Clause):
    """Exact match on any of several values."""

    field: str
    values: Tuple[Any, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"terms": {self.field: list(self.values)}}


@dataclass(frozen=True)
class Range(Clause):
    """Numeric or date range; at least one bound is required."""

    field: str
    gte: Optional[Any] = None
    lte: Optional[Any] = None
    gt: Optional[Any] = None
    lt: Optional[Any] = None

    def __post_init__(self):
        if all(b is None for b in (self.gte, self.lte, self.gt, self.lt)):
            raise ValueError(f"Range on '{self.field}' needs at least one bound")

    def to_dict(self) -> Dict[str, Any]:
        bounds = {
            name: value
            for name, value in (("gte", self.gte), ("lte", self.lte), ("gt", self.gt), ("lt", self.lt))
            if value is not None
        }
        return {"range": {self.field: bounds}}


@dataclass(frozen=True)
class Exists(Clause):
    """Document has a non-null value for the field."""

    field: str

    def to_dict(self) -> Dict[str, Any]:
        return {"exists": {"field": self.field}}


@dataclass(frozen=True)
class Bool(Clause):
    """Boolean combination of clauses."""

    must: Tuple[Clause, ...] = ()
    filter: Tuple[Clause, ...] = ()
    should: Tuple[Clause, ...] = ()
    must_not: Tuple[Clause, ...] = ()
    minimum_should_match: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        for name in ("must", "filter", "should", "must_not"):
            clauses = getattr(self, name)
            if clauses:
                body[name] = [c.to_dict() for c in clauses]
        if self.minimum_should_match is not None:
            body["minimum_should_match"] = self.minimum_should_match
        return {"bool": body}


class ScoringFunction:
    """Base class for function-score functions."""

    weight: float

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class FieldValueFactor(ScoringFunction):
    """Score from a numeric document field."""

    field: str
    factor: float = 1.0
    modifier: FieldModifier = FieldModifier.NONE
    weight: float = 1.0
    missing: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        fvf: Dict[str, Any] = {
            "field": self.field,
            "factor": self.factor,
            "modifier": self.modifier.value,
        }
        if self.missing is not None:
            fvf["missing"] = self.missing
        return {"field_value_factor": fvf, "weight": self.weight}


@dataclass(frozen=True)
class DecayFunction(ScoringFunction):
    """
    Decay score as a field moves away from an origin.

    Example:
        DecayFunction("createdAt", scale="30d", offset="5d", decay=0.5, weight=2.0)
    """

    field: str
    scale: str
    offset: Optional[str] = None
    decay: float = 0.5
    weight: float = 1.0
    origin: Optional[str] = "now"
    kind: str = "gauss"

    def to_dict(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"scale": self.scale, "decay": self.decay}
        if self.origin is not None:
            params["origin"] = self.origin
        if self.offset is not None:
            params["offset"] = self.offset
        return {self.kind: {self.field: params}, "weight": self.weight}


@dataclass(frozen=True)
class FilterWeight(ScoringFunction):
    """Constant weight for documents matching a filter."""

    filter: Clause
    weight: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {"filter": self.filter.to_dict(), "weight": self.weight}


@dataclass(frozen=True)
class FunctionScore(Clause):
    """Wrap a query and combine its score with weighted functions."""

    query: Clause
    functions: Tuple[ScoringFunction, ...] = ()
    score_mode: ScoreMode = ScoreMode.SUM
    boost_mode: BoostMode = BoostMode.MULTIPLY

    def with_functions(self, *functions: ScoringFunction) -> "FunctionScore":
        """Copy with functions appended."""
        return replace(self, functions=self.functions + tuple(functions))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "function_score": {
                "query": self.query.to_dict(),
                "functions": [f.to_dict() for f in self.functions],
                "score_mode": self.score_mode.value,
                "boost_mode": self.boost_mode.value,
            }
        }


@dataclass(frozen=True)
class SortSpec:
    """One sort key."""

    field: str
    order: SortOrder = SortOrder.DESC

    def to_dict(self) -> Dict[str, Any]:
        return {self.field: self.order.value}


@dataclass
class IndexRequest:
    """
    A complete index search request body.

    size is limit + 1 so callers can tell whether another page exists.
    """

    query: Clause
    size: int
    sort: Tuple[SortSpec, ...] = ()
    search_after: Optional[Tuple[Any, ...]] = None
    aggregations: Dict[str, Any] = field(default_factory=dict)
    source: Optional[Tuple[str, ...]] = None
    track_total_hits: bool = True

    @property
    def limit(self) -> int:
        """Page size the request was built for."""
        return self.size - 1

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "query": self.query.to_dict(),
            "size": self.size,
            "track_total_hits": self.track_total_hits,
        }
        if self.sort:
            body["sort"] = [s.to_dict() for s in self.sort]
        if self.search_after is not None:
            body["search_after"] = list(self.search_after)
        if self.aggregations:
            body["aggs"] = self.aggregations
        if self.source is not None:
            body["_source"] = list(self.source)
        return body


def _boosted_field(name: str, boost: Union[int, float]) -> str:
    if boost == 1:
        return name
    return f"{name}^{boost:g}"


# Logical field names used by boost tables -> index field names
FIELD_ALIASES: Dict[str, str] = {
    "name": "title",
    "brand": "brandName",
}


def index_field(name: str) -> str:
    """Resolve a logical field name to its index field."""
    return FIELD_ALIASES.get(name, name)
