"""
Search Errors
Exception taxonomy for the search pipeline.
"""

from http import HTTPStatus
from typing import Optional


class SearchError(Exception):
    """Base exception for search errors."""

    def __init__(
        self,
        message: str,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = int(status_code)
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to an error payload."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class InvalidRequestError(SearchError):
    """Raised for search requests that fail validation."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message=message, status_code=HTTPStatus.BAD_REQUEST, details=details)


class MalformedCursorError(SearchError):
    """Raised when a pagination cursor cannot be decoded."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message=message, status_code=HTTPStatus.BAD_REQUEST, details=details)


class IndexQueryError(SearchError):
    """Raised when the document index call fails."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        status_code: int = HTTPStatus.BAD_GATEWAY,
    ):
        super().__init__(message=message, status_code=status_code, details=details)


class IndexUnavailableError(IndexQueryError):
    """Raised when the index cannot be reached."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message, details=details, status_code=HTTPStatus.SERVICE_UNAVAILABLE
        )


class QueryFailedError(IndexQueryError):
    """Raised when the index rejects or fails to execute a request."""


class EntityExtractionError(SearchError):
    """Raised inside the entity extractor; never escapes it."""


class ClassifierTrainingError(SearchError):
    """Raised when the intent classifier cannot be trained."""


class PreferenceLookupError(SearchError):
    """Raised when user preferences cannot be loaded."""


class AnalyticsError(SearchError):
    """Raised when an analytics event cannot be delivered."""
