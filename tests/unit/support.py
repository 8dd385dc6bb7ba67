"""Shared constants and helpers for the unit tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

FIXED_TIME = datetime(2025, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
FIXED_STAMP = "2025-01-02T03:04:05.678Z"

APP_LOG = Path("logs") / "app.log"
ERROR_LOG = Path("logs") / "error.log"


def read_lines(path: Path) -> list[str]:
    """Lines of a sink file, keeping their newline terminators."""
    if not path.exists():
        return []
    return path.read_text(encoding="utf-8").splitlines(keepends=True)
