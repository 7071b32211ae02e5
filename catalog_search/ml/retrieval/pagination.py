"""
Cursor Pagination
Opaque forward-only cursors built from the last hit's sort values.
"""

import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import MalformedCursorError

logger = logging.getLogger(__name__)

SortTuple = Tuple[Any, ...]


@dataclass
class PageSlice:
    """One trimmed page of hits."""

    hits: List[Dict[str, Any]] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


class CursorPaginator:
    """
    Encode and decode pagination cursors.

    A cursor is url-safe base64 of {"sort": [...], "timestamp": <ms>}.
    Pages are fetched with limit + 1 rows; the extra row only signals
    that another page exists and is never returned.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def encode(self, sort_tuple: Sequence[Any]) -> str:
        """
        Encode a sort tuple as a cursor.

        Args:
            sort_tuple: Sort values of the last returned hit (JSON scalars)

        Returns:
            Opaque cursor string
        """
        payload = {"sort": list(sort_tuple), "timestamp": int(self._clock() * 1000)}
        raw = json.dumps(payload, separators=(",", ":"), allow_nan=False)
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

    def decode(self, cursor: str, expected_length: Optional[int] = None) -> SortTuple:
        """
        Decode a cursor back into its sort tuple.

        Args:
            cursor: Cursor string from encode()
            expected_length: Number of sort keys the current request uses

        Returns:
            Sort tuple

        Raises:
            MalformedCursorError: If the cursor is not one we produced
        """
        if not cursor or not isinstance(cursor, str):
            raise MalformedCursorError("Cursor is empty")

        try:
            padded = cursor + "=" * (-len(cursor) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            payload = json.loads(raw.decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeError) as e:
            raise MalformedCursorError(f"Cursor is not valid: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("sort"), list):
            raise MalformedCursorError("Cursor has no sort values")

        sort_values = payload["sort"]
        if not sort_values:
            raise MalformedCursorError("Cursor has no sort values")
        if expected_length is not None and len(sort_values) != expected_length:
            raise MalformedCursorError(
                f"Cursor has {len(sort_values)} sort values, expected {expected_length}",
                details={"expected": expected_length, "actual": len(sort_values)},
            )

        return tuple(sort_values)

    def decode_or_none(
        self, cursor: Optional[str], expected_length: Optional[int] = None
    ) -> Optional[SortTuple]:
        """
        Decode a cursor, restarting from the first page if it is malformed.

        Returns:
            Sort tuple, or None for a missing or malformed cursor
        """
        if cursor is None:
            return None
        try:
            return self.decode(cursor, expected_length)
        except MalformedCursorError as e:
            logger.warning(f"Ignoring malformed cursor, starting from first page: {e.message}")
            return None

    def paginate(self, hits: Sequence[Dict[str, Any]], limit: int) -> PageSlice:
        """
        Trim a limit + 1 hit list to one page.

        Args:
            hits: Raw index hits, in sort order
            limit: Page size

        Returns:
            PageSlice with next_cursor set only when more hits exist
        """
        has_more = len(hits) > limit
        page = list(hits[:limit])
        next_cursor = None
        if has_more and page:
            next_cursor = self.encode(sort_values_of(page[-1]))
        return PageSlice(hits=page, has_more=has_more, next_cursor=next_cursor)


def sort_values_of(hit: Dict[str, Any]) -> List[Any]:
    """Sort values of a hit; [score, createdAt, id] when the index returned none."""
    if hit.get("sort"):
        return list(hit["sort"])
    source = hit.get("_source") or {}
    return [hit.get("_score"), source.get("createdAt"), source.get("id", hit.get("_id"))]
