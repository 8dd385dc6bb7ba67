from __future__ import annotations

import builtins
import io
import logging
from collections.abc import Iterator
from typing import Any

import pytest

from logtap.interceptor import DEFAULT_ENTRY_POINTS, EntryPoint, Interceptor
from logtap.models import Severity
from logtap.sinks import SinkManager
from support import APP_LOG, ERROR_LOG, FIXED_STAMP, read_lines


class _Console:
    """A fake display namespace that records what reaches it."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        for name in ("log", "error", "warn", "info", "debug"):
            setattr(self, name, self._recorder(name))

    def _recorder(self, name: str):
        def _show(*args: Any, **kwargs: Any) -> str:
            self.calls.append((name, args, kwargs))
            return f"shown:{name}"

        return _show


_SEVERITY_BY_NAME: dict[str, Severity] = {
    "log": "LOG",
    "error": "ERROR",
    "warn": "WARN",
    "info": "INFO",
    "debug": "DEBUG",
}


def _entry_points(console: _Console) -> list[EntryPoint]:
    return [EntryPoint(severity, console, name) for name, severity in _SEVERITY_BY_NAME.items()]


@pytest.fixture
def console() -> _Console:
    return _Console()


@pytest.fixture
def interceptor(console: _Console, sinks: SinkManager, fixed_builder) -> Iterator[Interceptor]:
    tap = Interceptor(sinks, entry_points=_entry_points(console), record_builder=fixed_builder)
    tap.install()
    yield tap
    tap.teardown()


@pytest.mark.parametrize("name", list(_SEVERITY_BY_NAME))
def test_each_entry_point_logs_and_forwards(
    name: str, console: _Console, interceptor: Interceptor, sinks: SinkManager
) -> None:
    payload = {"n": [1, 2]}
    result = getattr(console, name)("hello", payload, end="!")
    sinks.close_all()

    severity = _SEVERITY_BY_NAME[name]
    expected = f"[{FIXED_STAMP}] [{severity}] hello {{'n': [1, 2]}}\n"
    assert read_lines(APP_LOG) == [expected]
    assert result == f"shown:{name}"
    assert console.calls == [(name, ("hello", payload), {"end": "!"})]
    assert console.calls[0][1][1] is payload

    if severity in {"WARN", "ERROR"}:
        assert read_lines(ERROR_LOG) == [expected]
    else:
        assert read_lines(ERROR_LOG) == []


def test_originals_are_captured_before_replacement(console: _Console, sinks: SinkManager) -> None:
    original_log = console.log
    tap = Interceptor(sinks, entry_points=_entry_points(console))
    tap.install()
    try:
        assert console.log is not original_log
        assert tap.originals[EntryPoint("LOG", console, "log")] is original_log
        tap.install()
        assert tap.originals[EntryPoint("LOG", console, "log")] is original_log
    finally:
        tap.teardown()
    assert console.log is original_log


def test_formatting_failure_still_forwards(console: _Console, sinks: SinkManager) -> None:
    def _broken(severity: Severity, args: Any):
        raise RuntimeError("formatter exploded")

    tap = Interceptor(sinks, entry_points=_entry_points(console), record_builder=_broken)
    tap.install()
    try:
        console.error("still shown")
    finally:
        tap.teardown()

    assert tap.failures == 1
    assert console.calls == [("error", ("still shown",), {})]


def test_log_call_made_while_rendering_is_only_forwarded(
    console: _Console, interceptor: Interceptor, sinks: SinkManager
) -> None:
    class _Chatty:
        def __repr__(self) -> str:
            console.info("rendering chatty")
            return "<chatty>"

    console.log([_Chatty()])
    sinks.close_all()

    assert read_lines(APP_LOG) == [f"[{FIXED_STAMP}] [LOG] [<chatty>]\n"]
    assert [call[0] for call in console.calls] == ["info", "log"]


def test_real_print_is_logged_and_still_displayed(
    capsys: pytest.CaptureFixture[str], sinks: SinkManager, fixed_builder
) -> None:
    original_print = builtins.print
    tap = Interceptor(sinks, entry_points=DEFAULT_ENTRY_POINTS[:1], record_builder=fixed_builder)
    tap.install()
    try:
        print("hello", 1)
        buffer = io.StringIO()
        print("to a file", file=buffer)
    finally:
        tap.teardown()
    sinks.close_all()

    assert builtins.print is original_print
    assert capsys.readouterr().out == "hello 1\n"
    assert buffer.getvalue() == "to a file\n"
    assert read_lines(APP_LOG) == [f"[{FIXED_STAMP}] [LOG] hello 1\n"]


def test_logging_error_writes_both_sinks_and_forwards(
    monkeypatch: pytest.MonkeyPatch, sinks: SinkManager, fixed_builder
) -> None:
    forwarded: list[tuple[Any, ...]] = []
    monkeypatch.setattr(logging, "error", lambda *args, **kwargs: forwarded.append(args))

    error_entry = next(e for e in DEFAULT_ENTRY_POINTS if e.severity == "ERROR")
    tap = Interceptor(sinks, entry_points=[error_entry], record_builder=fixed_builder)
    tap.install()
    try:
        logging.error("failed", {"code": 42})
    finally:
        tap.teardown()
    sinks.close_all()

    expected = f"[{FIXED_STAMP}] [ERROR] failed {{'code': 42}}\n"
    assert read_lines(APP_LOG) == [expected]
    assert read_lines(ERROR_LOG) == [expected]
    assert forwarded == [("failed", {"code": 42})]


def test_teardown_leaves_foreign_patches_alone(console: _Console, sinks: SinkManager) -> None:
    tap = Interceptor(sinks, entry_points=_entry_points(console))
    tap.install()

    def replacement(*args: Any) -> None:
        return None

    console.log = replacement
    tap.teardown()
    assert console.log is replacement
