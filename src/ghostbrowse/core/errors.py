"""Error taxonomy for the research pipeline.

Failures are contained at the smallest unit that can absorb them:

- a failed retry attempt stays inside the retry executor,
- a failed source job becomes the ``error`` field of its ``SourceResult``,
- a failed page read becomes ``error=True`` on its ``PageResult``.

Only :class:`ConfigError` reaches the caller, and only before any job starts.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification attached to failed results and log lines."""

    RATE_DELAYED = "rate_delayed"  # internal wait, never surfaced as a failure
    RENDER_FAILURE = "render_failure"
    TIMEOUT = "timeout"
    PARSE_FAILURE = "parse_failure"
    PARTIAL_SOURCE_FAILURE = "partial_source_failure"


class GhostBrowseError(Exception):
    """Base exception for ghostbrowse errors."""

    kind: ErrorKind = ErrorKind.RENDER_FAILURE

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class RenderError(GhostBrowseError):
    """The renderer threw or returned nothing usable."""

    kind = ErrorKind.RENDER_FAILURE


class SourceTimeout(GhostBrowseError):
    """A per-job or per-read deadline expired."""

    kind = ErrorKind.TIMEOUT


class UnknownSourceError(GhostBrowseError):
    """No producer is registered under the requested source name."""

    kind = ErrorKind.PARTIAL_SOURCE_FAILURE


class ConfigError(GhostBrowseError):
    """Configuration file or value could not be used."""

    kind = ErrorKind.PARSE_FAILURE


def truncate_error(exc: BaseException, limit: int = 80) -> str:
    """Short, single-line description of *exc* for logs and results."""
    message = str(exc).strip() or exc.__class__.__name__
    message = " ".join(message.split())
    return message[:limit]


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception to an :class:`ErrorKind`."""
    if isinstance(exc, GhostBrowseError):
        return exc.kind
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TIMEOUT
    return ErrorKind.RENDER_FAILURE
