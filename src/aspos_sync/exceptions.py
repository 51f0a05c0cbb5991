"""Error taxonomy for the synchronization engine.

Every error raised below the stage boundary derives from SyncError so that a
stage can catch one type, log it with context and turn it into a failed result.
"""


class SyncError(Exception):
    """Base class for all synchronization failures."""


class AuthError(SyncError):
    """Token acquisition failed."""


class NetworkError(SyncError):
    """An upstream HTTP call failed, timed out or returned a non-success status."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class UpstreamFormatError(SyncError):
    """An upstream response was missing a field or had an unexpected shape."""


class StorageError(SyncError):
    """A write against local storage failed."""
