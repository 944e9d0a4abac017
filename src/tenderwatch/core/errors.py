"""
Error taxonomy for discovery runs.

Every error aborts the run it occurs in. Inserts are idempotent, so the
recovery path for any of them is to run discovery again.
"""

from __future__ import annotations

from typing import Any


class DiscoveryError(Exception):
    """Base exception for discovery failures. All of them abort the run."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.source = source
        self.url = url
        self.status_code = status_code
        self.cause = cause


class SessionError(DiscoveryError):
    """Session or authentication bootstrap failed."""
    pass


class FetchError(DiscoveryError):
    """A page request failed or its payload had the wrong shape."""
    pass


class ParseError(DiscoveryError):
    """A field could not be converted to its semantic type."""

    def __init__(self, message: str, *, value: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.value = value


class NoDataError(DiscoveryError):
    """A browser page load produced no captured data response."""
    pass
