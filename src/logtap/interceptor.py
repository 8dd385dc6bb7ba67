"""Interception of the process-wide log entry points.

Each entry point (`print` and the module-level `logging` helpers) is replaced
with a wrapper that formats the call, routes the line to the sinks, and then
forwards the original arguments to the original callable, so whatever the call
used to display is displayed unchanged.
"""

from __future__ import annotations

import builtins
import functools
import logging
import sys
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .formatter import build_record
from .models import LogRecord, Severity
from .sinks import SinkManager

logger = logging.getLogger(__name__)

RecordBuilder = Callable[[Severity, Sequence[Any]], LogRecord]


@dataclass(frozen=True)
class EntryPoint:
    """An attribute on some namespace that emits log output at a fixed severity."""

    severity: Severity
    owner: Any
    attribute: str


DEFAULT_ENTRY_POINTS: tuple[EntryPoint, ...] = (
    EntryPoint("LOG", builtins, "print"),
    EntryPoint("ERROR", logging, "error"),
    EntryPoint("WARN", logging, "warning"),
    EntryPoint("INFO", logging, "info"),
    EntryPoint("DEBUG", logging, "debug"),
)


def _is_console_print(entry: EntryPoint, kwargs: Mapping[str, Any]) -> bool:
    """`print` only counts as a log call when it targets the console."""
    if entry.owner is not builtins or entry.attribute != "print":
        return True
    target = kwargs.get("file")
    return target is None or target is sys.stdout or target is sys.stderr


class Interceptor:
    """Installs and removes the entry-point wrappers.

    The originals are captured once, at `install()`, into a read-only mapping
    shared by every wrapper; `teardown()` puts them back.
    """

    def __init__(
        self,
        sinks: SinkManager,
        *,
        entry_points: Sequence[EntryPoint] = DEFAULT_ENTRY_POINTS,
        record_builder: RecordBuilder = build_record,
    ) -> None:
        self._sinks = sinks
        self._entry_points = tuple(entry_points)
        self._build = record_builder
        self._originals: Mapping[EntryPoint, Callable[..., Any]] = MappingProxyType({})
        self._wrappers: dict[EntryPoint, Callable[..., Any]] = {}
        self._busy = threading.local()
        self._installed = False
        self.failures = 0

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def originals(self) -> Mapping[EntryPoint, Callable[..., Any]]:
        """Pre-interception callables, keyed by entry point."""
        return self._originals

    def install(self) -> None:
        """Replace every entry point with its wrapper. Safe to call multiple times."""
        if self._installed:
            return
        originals = MappingProxyType({entry: getattr(entry.owner, entry.attribute) for entry in self._entry_points})
        self._originals = originals
        for entry in self._entry_points:
            wrapper = self._make_wrapper(entry, originals[entry])
            self._wrappers[entry] = wrapper
            setattr(entry.owner, entry.attribute, wrapper)
        self._installed = True

    def teardown(self) -> None:
        """Restore the original entry points."""
        if not self._installed:
            return
        for entry, original in self._originals.items():
            # Leave attributes alone that someone else has re-patched since.
            if getattr(entry.owner, entry.attribute, None) is self._wrappers.get(entry):
                setattr(entry.owner, entry.attribute, original)
        self._wrappers.clear()
        self._installed = False

    def emit(self, severity: Severity, args: Sequence[Any]) -> None:
        """Format and route one call; internal faults are counted, never raised."""
        if getattr(self._busy, "active", False):
            return
        self._busy.active = True
        try:
            self._sinks.write_record(self._build(severity, args))
        except Exception:  # noqa: BLE001 - logging must never break the caller
            self.failures += 1
            logger.debug("Dropped %s log line", severity, exc_info=True)
        finally:
            self._busy.active = False

    def _make_wrapper(self, entry: EntryPoint, original: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(original)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if _is_console_print(entry, kwargs):
                self.emit(entry.severity, args)
            return original(*args, **kwargs)

        return wrapper
