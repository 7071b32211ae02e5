"""
Index Client
Boundary to the external document index.
"""

from typing import Any, Dict, Protocol, runtime_checkable


@runtime_checkable
class IndexClient(Protocol):
    """
    Document index the search layer queries.

    search() returns {"hits": {"hits": [{"_source", "_score", "sort"?}], "total"},
    "aggregations"?}. Connection errors (ConnectionError, TimeoutError) mean
    the index is unavailable; any other exception is a failed query.
    """

    def search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]:
        ...


def total_hits(response: Dict[str, Any]) -> int:
    """Total match count from either {"value": n} or a bare integer."""
    total = (response.get("hits") or {}).get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)
