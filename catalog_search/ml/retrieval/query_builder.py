"""
Search Query Builder
Compose full-text query, filters, scoring, sort, cursor and aggregations into one index request.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import QueryConfig, get_search_config
from .filters import ProductFilters
from .query_dsl import (
    Bool,
    Clause,
    DecayFunction,
    FilterWeight,
    FunctionScore,
    IndexRequest,
    MatchAll,
    MultiMatch,
    ScoreMode,
    BoostMode,
    SortOrder,
    SortSpec,
    Term,
    index_field,
)

logger = logging.getLogger(__name__)

Scorer = Callable[[Clause], Clause]

# Unique field used as the final sort key
TIE_BREAKER_FIELD = "id"


class SearchQueryBuilder:
    """
    Build index requests for product search.

    Query shape:
        function_score(
            bool(must=[scored full-text query], filter=[isActive, filters...]),
            functions=[in-stock, on-sale, recency decay],
        )
    """

    def __init__(self, config: Optional[QueryConfig] = None):
        """
        Initialize builder.

        Args:
            config: Query configuration (defaults to global config)
        """
        self.config = config or get_search_config().query

    def text_query(self, query: Optional[str], boosts: Optional[Mapping[str, float]] = None) -> Clause:
        """
        Full-text clause for the query string.

        Args:
            query: Query text; empty means match everything
            boosts: Per-field weights overriding the configured text field weights

        Returns:
            MultiMatch or MatchAll clause
        """
        if not query or not query.strip():
            return MatchAll()

        weights = dict(self.config.text_fields)
        for name, weight in (boosts or {}).items():
            field_name = index_field(name)
            if field_name in weights:
                weights[field_name] = weight

        return MultiMatch(
            query=query.strip(),
            fields=tuple(weights.items()),
            type="best_fields",
            fuzziness=self.config.fuzziness,
            prefix_length=self.config.prefix_length,
            tie_breaker=self.config.tie_breaker,
        )

    def sort_keys(self, sort: Optional[Sequence[SortSpec]] = None) -> Tuple[SortSpec, ...]:
        """
        Sort keys with relevance and id tie-breakers.

        Requested sort: [field, _score desc, id asc]. Default:
        [_score desc, createdAt desc, id asc].
        """
        keys: List[SortSpec] = []
        if sort:
            keys.extend(s for s in sort if s.field not in ("_score", TIE_BREAKER_FIELD))
            keys.append(SortSpec("_score", SortOrder.DESC))
        else:
            keys.append(SortSpec("_score", SortOrder.DESC))
            keys.append(SortSpec("createdAt", SortOrder.DESC))
        keys.append(SortSpec(TIE_BREAKER_FIELD, SortOrder.ASC))
        return tuple(keys)

    def aggregations(self) -> Dict[str, Any]:
        """Facet and price-stat aggregations."""
        cfg = self.config
        ranges = []
        for low, high in cfg.price_ranges:
            bucket: Dict[str, Any] = {}
            if low is not None:
                bucket["from"] = low
            if high is not None:
                bucket["to"] = high
            ranges.append(bucket)

        return {
            "categories": {"terms": {"field": "categories.keyword", "size": cfg.category_facet_size}},
            "brands": {"terms": {"field": "brandName.keyword", "size": cfg.brand_facet_size}},
            "values": {"terms": {"field": "values.keyword", "size": cfg.value_facet_size}},
            "price_ranges": {"range": {"field": "price", "ranges": ranges}},
            "avg_price": {"avg": {"field": "price"}},
            "min_price": {"min": {"field": "price"}},
            "max_price": {"max": {"field": "price"}},
        }

    def build(
        self,
        query: Optional[str] = None,
        filters: Optional[ProductFilters] = None,
        cursor: Optional[Sequence[Any]] = None,
        limit: int = 20,
        sort: Optional[Sequence[SortSpec]] = None,
        include_aggregations: bool = True,
        scorer: Optional[Scorer] = None,
        boosts: Optional[Mapping[str, float]] = None,
    ) -> IndexRequest:
        """
        Build an index request.

        Args:
            query: Query text
            filters: Product filters
            cursor: Decoded sort tuple to resume after
            limit: Page size
            sort: Requested sort keys
            include_aggregations: Request facet aggregations
            scorer: Scoring profile applied to the full-text clause
            boosts: Intent field boosts for the full-text clause

        Returns:
            IndexRequest sized limit + 1
        """
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")

        text = self.text_query(query, boosts)
        scored = scorer(text) if scorer is not None else text

        filter_clauses: List[Clause] = [Term("isActive", True)]
        if filters is not None:
            filter_clauses.extend(filters.to_clauses())

        cfg = self.config
        wrapped = FunctionScore(
            query=Bool(must=(scored,), filter=tuple(filter_clauses)),
            functions=(
                FilterWeight(Term("inStock", True), cfg.in_stock_weight),
                FilterWeight(Term("isOnSale", True), cfg.on_sale_weight),
                DecayFunction(
                    "createdAt",
                    scale=cfg.recency_scale,
                    offset=cfg.recency_offset,
                    decay=cfg.recency_decay,
                    weight=cfg.recency_weight,
                ),
            ),
            score_mode=ScoreMode.SUM,
            boost_mode=BoostMode.MULTIPLY,
        )

        sort_keys = self.sort_keys(sort)
        search_after = tuple(cursor) if cursor else None
        if search_after is not None and len(search_after) != len(sort_keys):
            logger.warning(
                f"Cursor has {len(search_after)} sort values but request sorts on "
                f"{len(sort_keys)} keys, starting from first page"
            )
            search_after = None

        return IndexRequest(
            query=wrapped,
            size=limit + 1,
            sort=sort_keys,
            search_after=search_after,
            aggregations=self.aggregations() if include_aggregations else {},
            source=tuple(cfg.source_fields),
        )
