"""
Search Analytics
Fire-and-forget analytics events for served searches.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..errors import AnalyticsError

logger = logging.getLogger(__name__)


@runtime_checkable
class AnalyticsSink(Protocol):
    """Destination for analytics events."""

    def track(self, event: Dict[str, Any]) -> None:
        ...


class LoggingAnalyticsSink:
    """Writes analytics events to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def track(self, event: Dict[str, Any]) -> None:
        logger.log(self.level, f"Analytics event: {event.get('event')}", extra={"event": event})


@dataclass
class SearchPerformedEvent:
    """Analytics event for a search served outside any experiment."""

    query: str
    result_count: int
    intent: Optional[str] = None
    scoring_profile: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["event"] = "search_performed"
        data["event_category"] = "search"
        return data


def track_safely(sink: Optional[AnalyticsSink], event: Dict[str, Any]) -> bool:
    """
    Send an event, logging and swallowing any failure.

    Args:
        sink: Analytics sink (None disables tracking)
        event: Event payload

    Returns:
        True if the sink accepted the event
    """
    if sink is None:
        return False
    try:
        sink.track(event)
        return True
    except Exception as e:
        error = AnalyticsError(
            f"Failed to track analytics event '{event.get('event')}': {e}",
            details={"event": event.get("event")},
        )
        logger.error(error.message)
        return False
