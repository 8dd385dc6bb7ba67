"""Message formatting.

Turns a severity plus an arbitrary argument list into one log line:

    [2025-01-02T03:04:05.678Z] [ERROR] failed {'code': 42}

Structured arguments are expanded with an explicit work stack rather than
Python recursion, so arbitrarily deep nesting cannot hit the recursion limit and
self-referential structures terminate (`<Circular dict>`).
"""

from __future__ import annotations

import dataclasses
import traceback
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from .models import LogRecord, Severity, iso_timestamp, utc_now

_SCALARS = (str, int, float, complex, bool, bytes, type(None))

# (opening text, entries, closing text); each entry is a list of literal text and pending values.
_Expansion = tuple[str, list[list[Any]], str]


class _Pending:
    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value


class _Leave:
    __slots__ = ("ident",)

    def __init__(self, ident: int) -> None:
        self.ident = ident


def _safe_repr(value: Any) -> str:
    """repr() that never raises."""
    try:
        return repr(value)
    except Exception:  # noqa: BLE001 - rendering must not fault
        return f"<unrepresentable {type(value).__name__}>"


def _render_exception(exc: BaseException) -> str:
    """Full traceback when the exception was raised, else its repr."""
    if exc.__traceback__ is None:
        return _safe_repr(exc)
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip("\n")


def _named_fields(value: Any) -> list[tuple[str, Any]] | None:
    """Field name/value pairs for record-like objects, or None for opaque values."""
    cls = type(value)
    if isinstance(value, BaseModel):
        return [(name, getattr(value, name, None)) for name in cls.model_fields]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return [(f.name, getattr(value, f.name, None)) for f in dataclasses.fields(value) if f.repr]
    if isinstance(value, tuple) and hasattr(value, "_fields"):
        return list(zip(value._fields, value))
    if cls.__repr__ is object.__repr__ and hasattr(value, "__dict__") and not callable(value):
        return list(vars(value).items())
    return None


def _expand(value: Any) -> _Expansion | str:
    """Describe how to expand a structured value, or return its final text for a leaf."""
    if isinstance(value, BaseException):
        return _render_exception(value)

    try:
        fields = _named_fields(value)
    except Exception:  # noqa: BLE001 - fall back to repr for hostile objects
        fields = None
    if fields is not None:
        entries = [[f"{name}=", _Pending(item)] for name, item in fields]
        return f"{type(value).__name__}(", entries, ")"

    if isinstance(value, Mapping):
        entries = [[_Pending(k), ": ", _Pending(v)] for k, v in value.items()]
        return "{", entries, "}"
    if isinstance(value, list):
        return "[", [[_Pending(item)] for item in value], "]"
    if isinstance(value, tuple):
        return "(", [[_Pending(item)] for item in value], ",)" if len(value) == 1 else ")"
    if isinstance(value, frozenset):
        if not value:
            return "frozenset()"
        return "frozenset({", [[_Pending(item)] for item in value], "})"
    if isinstance(value, set):
        if not value:
            return "set()"
        return "{", [[_Pending(item)] for item in value], "}"
    return _safe_repr(value)


def render_value(value: Any) -> str:
    """Render a value, fully expanding nested structure without a depth limit.

    Containers currently being expanded are tracked by identity; meeting one of
    them again renders `<Circular TypeName>` instead of descending. Shared but
    non-cyclic references are expanded each time they appear.
    """
    out: list[str] = []
    active: set[int] = set()
    stack: list[Any] = [_Pending(value)]

    while stack:
        item = stack.pop()
        if isinstance(item, str):
            out.append(item)
            continue
        if isinstance(item, _Leave):
            active.discard(item.ident)
            continue

        current = item.value
        if isinstance(current, _SCALARS):
            out.append(_safe_repr(current))
            continue

        ident = id(current)
        if ident in active:
            out.append(f"<Circular {type(current).__name__}>")
            continue

        expansion = _expand(current)
        if isinstance(expansion, str):
            out.append(expansion)
            continue

        opening, entries, closing = expansion
        active.add(ident)
        stack.append(_Leave(ident))
        stack.append(closing)
        for index in range(len(entries) - 1, -1, -1):
            stack.extend(reversed(entries[index]))
            if index:
                stack.append(", ")
        stack.append(opening)

    return "".join(out)


def render_argument(arg: Any) -> str:
    """Scalars render as their plain text; everything else is inspected."""
    if isinstance(arg, _SCALARS):
        return str(arg)
    return render_value(arg)


def build_record(
    severity: Severity,
    args: Sequence[Any],
    *,
    now: Callable[[], datetime] = utc_now,
) -> LogRecord:
    """Capture the timestamp and render the arguments into a record."""
    return LogRecord(
        timestamp=iso_timestamp(now()),
        severity=severity,
        message=" ".join(render_argument(arg) for arg in args),
    )


def format_message(
    severity: Severity,
    args: Sequence[Any],
    *,
    now: Callable[[], datetime] = utc_now,
) -> str:
    """Format one newline-terminated log line: `[<timestamp>] [<SEVERITY>] <args>`.

    Top-level scalars print as `str()` would; nested values use Python repr
    conventions, so `logging.error("failed", {"code": 42})` yields
    `... [ERROR] failed {'code': 42}`.
    """
    return build_record(severity, args, now=now).render()
