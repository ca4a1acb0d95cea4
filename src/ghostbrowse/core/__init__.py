"""Core - error taxonomy and progress events shared by the pipeline."""

from __future__ import annotations

from ghostbrowse.core.errors import (
    ConfigError,
    ErrorKind,
    GhostBrowseError,
    RenderError,
    SourceTimeout,
    UnknownSourceError,
)
from ghostbrowse.core.events import Event, EventBus, EventType

__all__ = [
    "ConfigError",
    "ErrorKind",
    "Event",
    "EventBus",
    "EventType",
    "GhostBrowseError",
    "RenderError",
    "SourceTimeout",
    "UnknownSourceError",
]
