"""API models."""

from .search import (
    AppliedFilter,
    Facet,
    FacetValue,
    PaginationInfo,
    PaginationInput,
    PriceStats,
    ProductResult,
    QueryAnalysis,
    SearchFilters,
    SearchRequest,
    SearchResponse,
    SortInput,
)

__all__ = [
    "AppliedFilter",
    "Facet",
    "FacetValue",
    "PaginationInfo",
    "PaginationInput",
    "PriceStats",
    "ProductResult",
    "QueryAnalysis",
    "SearchFilters",
    "SearchRequest",
    "SearchResponse",
    "SortInput",
]
