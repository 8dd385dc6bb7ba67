"""Log record models and sink routing.

Records are designed to be:
- Immutable and transient (only their rendered line is ever stored).
- Routed by severity to a fixed, closed set of sinks.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Final, Literal, get_args

from pydantic import BaseModel, ConfigDict

Severity = Literal[
    "LOG",
    "ERROR",
    "WARN",
    "INFO",
    "DEBUG",
    "UNCAUGHT_EXCEPTION",
    "UNHANDLED_REJECTION",
    "SIGTERM",
    "SIGINT",
]

SinkId = Literal["app", "error"]

SEVERITIES: Final[tuple[Severity, ...]] = get_args(Severity)
SINK_IDS: Final[tuple[SinkId, ...]] = get_args(SinkId)

_APP_ONLY: Final[tuple[SinkId, ...]] = ("app",)
_APP_AND_ERROR: Final[tuple[SinkId, ...]] = ("app", "error")

# Every line written to "error" is also written to "app".
SINK_ROUTES: Final[Mapping[Severity, tuple[SinkId, ...]]] = MappingProxyType(
    {
        "LOG": _APP_ONLY,
        "INFO": _APP_ONLY,
        "DEBUG": _APP_ONLY,
        "WARN": _APP_AND_ERROR,
        "ERROR": _APP_AND_ERROR,
        "UNCAUGHT_EXCEPTION": _APP_AND_ERROR,
        "UNHANDLED_REJECTION": _APP_AND_ERROR,
        "SIGTERM": _APP_AND_ERROR,
        "SIGINT": _APP_AND_ERROR,
    }
)


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


def iso_timestamp(ts: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision and a `Z` suffix."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LogRecord(BaseModel):
    """A single formatted log entry, alive only long enough to be rendered."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: str
    severity: Severity
    message: str

    @property
    def sinks(self) -> tuple[SinkId, ...]:
        """Sinks this record is routed to."""
        return SINK_ROUTES[self.severity]

    def render(self) -> str:
        """Render the record as one newline-terminated line."""
        return f"[{self.timestamp}] [{self.severity}] {self.message}\n"
