"""
Exceptions for the sync subsystem.

Every error carries a stable ``code`` so callers (and the offline queue) can
classify failures without string matching.
"""

import httpx


class SyncError(Exception):
    """Base exception for sync operations."""

    code = "sync_error"


class NotConfiguredError(SyncError):
    """Remote URL or token is missing; raised before any network call."""

    code = "not_configured"


class ConflictError(SyncError):
    """A conditional write was rejected (412 Precondition Failed)."""

    code = "conflict"

    def __init__(self, path: str, message: str = "conflict"):
        super().__init__(f"{message}: {path}")
        self.path = path


class RemoteHTTPError(SyncError):
    """Remote answered with a non-2xx status other than 304/412."""

    def __init__(self, path: str, status: int, reason: str = ""):
        super().__init__(f"HTTP {status} for {path}" + (f": {reason}" if reason else ""))
        self.path = path
        self.status = status

    @property
    def code(self) -> str:
        return f"http_{self.status}"


class NotFoundError(RemoteHTTPError):
    """Remote object does not exist."""

    def __init__(self, path: str):
        super().__init__(path, 404, "not found")


class NetworkError(SyncError):
    """Transport failure, no response received."""

    code = "network"

    def __init__(self, path: str, cause: httpx.TransportError):
        super().__init__(f"Network error for {path}: {cause}")
        self.path = path


class CorruptPayloadError(SyncError):
    """Remote document could not be decoded or validated."""

    code = "corrupt_payload"


# Statuses that can succeed on a later attempt without changing the request.
# 401/403 are kept retryable: they clear once the token is fixed.
_RETRYABLE_CLIENT_STATUSES = {401, 403, 408, 429}


def is_transient(error: Exception) -> bool:
    """True if retrying the same operation later may succeed."""
    if isinstance(error, (NetworkError, NotConfiguredError)):
        return True
    if isinstance(error, RemoteHTTPError):
        return error.status >= 500 or error.status in _RETRYABLE_CLIENT_STATUSES
    return False


def is_client_error(error: Exception) -> bool:
    """True for 4xx failures (other than 412) that retrying cannot fix."""
    return (
        isinstance(error, RemoteHTTPError)
        and 400 <= error.status < 500
        and error.status not in _RETRYABLE_CLIENT_STATUSES
    )
