"""The process-wide interception runtime.

`Runtime` wires the sink manager, the entry-point interceptor and the lifecycle
hooks together behind a single install/teardown pair. The module-level
`install()` keeps exactly one of them alive for the process.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

from .config import TapConfig, load_config
from .interceptor import DEFAULT_ENTRY_POINTS, Interceptor
from .lifecycle import LifecycleHooks
from .sinks import SinkManager

_T = TypeVar("_T")


class Runtime:
    """Sinks, interceptor and lifecycle hooks with one explicit lifecycle."""

    def __init__(
        self,
        config: TapConfig | None = None,
        *,
        hook_signals: bool = True,
        hook_threads: bool = True,
    ) -> None:
        """Compose the runtime.

        `hook_signals` and `hook_threads` exist for embedding hosts (and tests)
        that own those process-wide handlers themselves.
        """
        self.config = config or TapConfig()
        self.sinks = SinkManager(
            max_queue_size=self.config.queue_size,
            close_timeout_s=self.config.close_timeout_s,
        )
        self.interceptor = Interceptor(self.sinks, entry_points=DEFAULT_ENTRY_POINTS)
        self.hooks = LifecycleHooks(self.sinks, hook_signals=hook_signals, hook_threads=hook_threads)

    def install(self) -> None:
        """Open the sinks, then hook the lifecycle events and the entry points.

        Raises `OSError` when the log directory or files cannot be created.
        """
        self.sinks.ensure_log_directory()
        self.sinks.open_all()
        self.hooks.install()
        self.interceptor.install()

    def teardown(self) -> None:
        """Undo `install()` and close the sinks."""
        self.interceptor.teardown()
        self.hooks.teardown()
        self.sinks.close_all()


_lock = threading.Lock()
_current: Runtime | None = None


def install(config: TapConfig | None = None, *, hook_signals: bool = True) -> Runtime:
    """Install the process-wide runtime (configured from the environment by default).

    Calling it again returns the already-installed runtime.
    """
    global _current
    with _lock:
        if _current is None:
            runtime = Runtime(config or load_config(), hook_signals=hook_signals)
            runtime.install()
            _current = runtime
        return _current


def teardown() -> None:
    """Tear down the process-wide runtime, if any."""
    global _current
    with _lock:
        runtime, _current = _current, None
    if runtime is not None:
        runtime.teardown()


def current() -> Runtime | None:
    """The installed runtime, or None."""
    return _current


def run(main: Coroutine[Any, Any, _T]) -> _T:
    """`asyncio.run(main)` with the runtime installed first.

    Equivalent to calling `install()` and then `asyncio.run`: every loop
    created after install reports unretrieved task exceptions to the sinks.
    """
    install()
    return asyncio.run(main)
