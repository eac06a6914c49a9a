"""
Error taxonomy for the LiteTrack core.

None of these are fatal: callers handle them locally and the application keeps
running. InsightFetchFailure never escapes InsightClient.get_insights.
"""

from typing import Optional


class LiteTrackError(Exception):
    """Base class for all LiteTrack failures"""


class MalformedPayloadError(LiteTrackError, ValueError):
    """User supplied JSON text that does not parse into the expected shape"""


class DeliverySendFailure(LiteTrackError):
    """A simulated event could not be delivered to the configured endpoint"""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        self.reason = reason
        self.status_code = status_code
        message = f"HTTP {status_code}: {reason}" if status_code is not None else reason
        super().__init__(message)


class InsightFetchFailure(LiteTrackError):
    """Any failure obtaining or parsing an insight report"""
