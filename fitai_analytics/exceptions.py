"""Error types raised by the analytics engine.

Missing data is not an error here: insufficient history surfaces as an
``insufficient_data`` flag on trend results or as a ``SkippedPrediction``.
"""


class FitAIAnalyticsError(Exception):
    """Base class for analytics engine errors."""


class StoreUnavailable(FitAIAnalyticsError):
    """The record store could not be read or written."""

    def __init__(self, message: str, source: str = None):
        super().__init__(message)
        self.source = source


class InvalidPeriod(FitAIAnalyticsError, ValueError):
    """Unknown period type, negative offset or inverted date range."""
