"""Failures raised by the synchronization API client."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every failed synchronization request."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkError(SyncError):
    """The request could not complete (transport failure or server error)."""


class ConflictError(SyncError):
    """The item is already part of the collection."""


class NotFoundError(SyncError):
    """The item is not part of the collection."""


class AuthError(SyncError):
    """The caller is not authenticated or not allowed to access the resource."""


class RequestRejectedError(SyncError):
    """The server rejected the request payload."""
