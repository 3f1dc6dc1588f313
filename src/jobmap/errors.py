"""
Error kinds raised by jobmap.

The persistence layer converts every httpx failure into one of these, so the
controller only ever has to catch `JobMapError` subclasses.
"""

from __future__ import annotations

from typing import Optional


class JobMapError(Exception):
    """Base class for all jobmap errors."""


class Unauthorized(JobMapError):
    """The session expired or was never valid (HTTP 401)."""

    def __init__(self, message: str = "Login required"):
        super().__init__(message)


class ServerError(JobMapError):
    """Any other non-2xx response, or a transport failure (status is None then)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RequestAborted(JobMapError):
    """A fetch was cancelled before it settled, e.g. the user navigated away."""


class ValidationError(JobMapError):
    """Client-side input problem; never reaches the network."""


class StaleOverlayError(JobMapError):
    """An overlay handle was used after it was removed from the map."""
