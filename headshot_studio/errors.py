"""
Error taxonomy for the headshot core.

All failures are local and synchronous; nothing here is retried.
"""
from __future__ import annotations


class HeadshotError(Exception):
    """Base class for every error raised by headshot_studio."""


class DecodeError(HeadshotError):
    """Input bytes / path could not be decoded as a raster image."""


class InvalidDimensions(HeadshotError, ValueError):
    """Zero or negative image / target dimensions, or a malformed buffer."""


class InvalidSettings(HeadshotError, ValueError):
    """An adjustment parameter is outside its declared domain."""


class InvalidSessionState(HeadshotError):
    """Operation not allowed in the session's current state."""


class TransformError(HeadshotError):
    """
    Raised by an image transform provider.

    `status` carries the provider's HTTP-like status when it has one
    (e.g. 429 for rate limiting).
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status
