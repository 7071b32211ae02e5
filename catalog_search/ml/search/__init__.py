"""Search service."""

from .index_client import IndexClient, total_hits
from .search_service import (
    SearchService,
    create_search_service,
    entity_price_filters,
    merge_filters,
)

__all__ = [
    "IndexClient",
    "SearchService",
    "create_search_service",
    "entity_price_filters",
    "merge_filters",
    "total_hits",
]
