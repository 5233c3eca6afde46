"""Errors raised by the remote sync client."""


class RemoteSyncError(Exception):
    """A remote request failed (transport, HTTP or application-level error)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(RemoteSyncError):
    """The remote service asked us to slow down (HTTP 429)."""


class InvalidCursorError(RemoteSyncError):
    """The sync cursor was rejected as invalid or expired."""
