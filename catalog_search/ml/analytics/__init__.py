"""Search analytics."""

from .tracker import AnalyticsSink, LoggingAnalyticsSink, SearchPerformedEvent, track_safely

__all__ = ["AnalyticsSink", "LoggingAnalyticsSink", "SearchPerformedEvent", "track_safely"]
