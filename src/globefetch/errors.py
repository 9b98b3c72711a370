"""Failure modes of a poll cycle.

Everything raised while resolving, fetching or persisting a frame derives from
:class:`GlobeFetchError` so the poller can absorb a whole cycle's worth of
failures with a single handler and still pick a log severity per category.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "GlobeFetchError",
    "ConfigurationError",
    "UpstreamUnavailable",
    "TransportError",
    "FetchTimeout",
    "MalformedIndex",
    "StorageError",
]


class GlobeFetchError(RuntimeError):
    """Base exception for polling failures."""


class ConfigurationError(GlobeFetchError):
    """Raised when session settings are invalid at startup."""


class UpstreamUnavailable(GlobeFetchError):
    """Raised when an upstream answers with a non-200 status or cannot be reached."""

    def __init__(self, url: str, *, status: Optional[int] = None, reason: str = "") -> None:
        detail = f"HTTP {status}" if status is not None else (reason or "unreachable")
        super().__init__(f"{url}: {detail}")
        self.url = url
        self.status = status
        self.reason = reason


class TransportError(UpstreamUnavailable):
    """Connection-level failure (DNS, refused, reset, unsupported scheme)."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(url, reason=reason)


class FetchTimeout(UpstreamUnavailable):
    """The request did not complete within its time bound and was aborted."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(url, reason=f"timed out after {timeout:g}s")
        self.timeout = timeout


class MalformedIndex(GlobeFetchError):
    """The timestamp index body is not the JSON shape we expect."""


class StorageError(GlobeFetchError):
    """Writing an artifact to the artifacts directory failed."""
