"""Exception hierarchy shared across fetching, extraction and reconciliation.

Fetch-level failures are retried locally and then reported per URL; they are
never raised out of a batch. Extraction failures are reported per source.
Only :class:`NoUsableCatalogueError` is allowed to halt a harvest.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "HarvestError",
    "FetchError",
    "HTTPStatusError",
    "DecodeError",
    "RedirectLoopError",
    "InvalidSourceError",
    "NoUsableCatalogueError",
]


class HarvestError(RuntimeError):
    """Base exception for novelharvest failures."""


class FetchError(HarvestError):
    """Raised when a single fetch attempt fails and may be retried."""


class HTTPStatusError(FetchError):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, status: int, url: Optional[str] = None) -> None:
        message = f"Status Code Error {status}"
        if url:
            message = f"{message} for {url}"
        super().__init__(message)
        self.status = status
        self.url = url


class DecodeError(FetchError):
    """Raised when a response body cannot be decoded to text."""


class RedirectLoopError(FetchError):
    """Raised when client-side redirects keep chaining past the configured limit."""


class InvalidSourceError(HarvestError):
    """Raised when no catalogue strategy finds any chapter on a page."""

    def __init__(self, source: str, reason: str = "no chapter list found") -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class NoUsableCatalogueError(HarvestError):
    """Raised when no catalogue survives extraction or reconciliation."""
