"""
Exception hierarchy for patched-sync.

- ConfigurationError: bad construction parameters, raised synchronously
- TransportError: network failure, HTTP status >= 400, non-JSON or malformed payload
- PatchApplyError: a counter-patch could not be applied to the local state
"""

from typing import Any, Optional


class PatchedSyncError(Exception):
    """Base exception for patched-sync errors"""
    pass


class ConfigurationError(PatchedSyncError):
    """Raised when an engine or transport is configured incorrectly"""
    pass


class TransportError(PatchedSyncError):
    """
    Raised by a transport when a request to the remote peer fails.

    Attributes:
        status_code: HTTP status of the failed response, if there was one
        body: Decoded (or raw) response body, if there was one
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PatchApplyError(PatchedSyncError):
    """Raised when a patch document cannot be applied to the local state"""
    pass


__all__ = ['PatchedSyncError', 'ConfigurationError', 'TransportError', 'PatchApplyError']
