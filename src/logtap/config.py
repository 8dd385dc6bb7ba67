"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting `LOGTAP_*` environment variables into a strongly-typed Pydantic model.
- Validating values and providing actionable error messages.

The log directory, file names, entry points and lifecycle hooks are fixed and
absent here.
"""

from __future__ import annotations

import os
from typing import TypeVar

import dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

_T = TypeVar("_T", int, float)


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


class TapConfig(BaseModel):
    """Tuning knobs for the interception runtime."""

    model_config = ConfigDict(frozen=True)

    queue_size: int = Field(default=10000, description="Max buffered lines per sink before dropping")
    close_timeout_s: float = Field(default=5.0, description="Max wait for a sink to drain at exit (seconds)")

    @field_validator("queue_size")
    def validate_queue_size(cls, v: int) -> int:
        """Queue must hold at least one line."""
        if v <= 0:
            raise ValueError(f"LOGTAP_QUEUE_SIZE must be > 0. Got: {v}")
        return v

    @field_validator("close_timeout_s")
    def validate_close_timeout(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"LOGTAP_CLOSE_TIMEOUT must be >= 0. Got: {v}")
        return v


def load_config() -> TapConfig:
    """Load the runtime configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages for malformed values.
    """
    dotenv.load_dotenv()

    return TapConfig(
        queue_size=_get_env_number("LOGTAP_QUEUE_SIZE", 10000, int),
        close_timeout_s=_get_env_number("LOGTAP_CLOSE_TIMEOUT", 5.0, float),
    )
