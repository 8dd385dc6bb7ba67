from __future__ import annotations

from collections.abc import Iterator
from functools import partial
from pathlib import Path

import pytest

import logtap
from logtap.formatter import build_record
from logtap.sinks import SinkManager
from support import FIXED_TIME


@pytest.fixture(autouse=True)
def _isolated_log_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Run every unit test from a fresh directory so `logs/` lands in tmp_path.

    Also makes sure no process-wide runtime leaks from one test into the next.
    """
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    logtap.teardown()


@pytest.fixture
def sinks() -> Iterator[SinkManager]:
    manager = SinkManager(max_queue_size=1000, close_timeout_s=5.0)
    yield manager
    manager.close_all()


@pytest.fixture
def fixed_builder():
    """Record builder pinned to FIXED_TIME."""
    return partial(build_record, now=lambda: FIXED_TIME)
