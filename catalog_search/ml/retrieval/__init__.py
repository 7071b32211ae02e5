"""
Retrieval Package
Index request construction, filtering, pagination and facets.

Scoring profiles live in .scoring_profiles and are imported from there
directly, since they depend on the NLP package.
"""

from .facets import Facet, FacetMapper, FacetValue, PriceStats
from .filters import AppliedFilter, FilterOperator, ProductFilter, ProductFilters, combine_filters
from .pagination import CursorPaginator, PageSlice
from .query_builder import SearchQueryBuilder
from .query_dsl import IndexRequest, SortOrder, SortSpec

__all__ = [
    "AppliedFilter",
    "CursorPaginator",
    "Facet",
    "FacetMapper",
    "FacetValue",
    "FilterOperator",
    "IndexRequest",
    "PageSlice",
    "PriceStats",
    "ProductFilter",
    "ProductFilters",
    "SearchQueryBuilder",
    "SortOrder",
    "SortSpec",
    "combine_filters",
]
