from __future__ import annotations


class CalendarViewerError(Exception):
    """Base class for errors surfaced by the API."""


class UpstreamError(CalendarViewerError):
    """Google answered with an error or could not be reached."""


class NotAuthenticatedError(CalendarViewerError):
    """No usable session: cookie missing, tampered, expired, or token revoked."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ConfigurationError(CalendarViewerError):
    """A required setting (OAuth client, session secret) is missing."""
