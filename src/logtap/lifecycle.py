"""Process lifecycle hooks.

Subscribes to the interpreter's fatal and termination events and, for each,
writes a synthesized record to both sinks before carrying out the process
action:

- uncaught exception in the main thread: log, then let the interpreter exit
  with status 1 (running the application's own atexit handlers)
- uncaught exception in any other thread: log, exit with status 1
- unhandled asyncio task/future exception: log, keep running
- SIGTERM / SIGINT: log, exit with status 0
- normal interpreter exit: close the sinks, log nothing
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import signal
import sys
import threading
import traceback
from collections.abc import Callable
from types import FrameType, TracebackType
from typing import Any, Final

from .formatter import build_record
from .models import Severity
from .sinks import SinkManager

logger = logging.getLogger(__name__)

SIGNAL_MESSAGES: Final[dict[str, str]] = {
    "SIGTERM": "Process terminated",
    "SIGINT": "Process interrupted",
}

FAULT_EXIT_CODE: Final = 1
SIGNAL_EXIT_CODE: Final = 0

LoopExceptionHandler = Callable[[asyncio.AbstractEventLoop, dict[str, Any]], object]


def describe_fault(
    exc_type: type[BaseException],
    exc: BaseException | None,
    tb: TracebackType | None,
) -> str:
    """Diagnostic text for an uncaught exception: its traceback, or its text when it has none."""
    if tb is None:
        return str(exc) if exc is not None else exc_type.__name__
    return "".join(traceback.format_exception(exc_type, exc, tb)).rstrip("\n")


class LifecycleHooks:
    """Installs fault, rejection, signal and exit handlers around a `SinkManager`."""

    def __init__(
        self,
        sinks: SinkManager,
        *,
        hook_signals: bool = True,
        hook_threads: bool = True,
        hard_exit: Callable[[int], Any] = os._exit,
    ) -> None:
        """Create hooks writing to `sinks`.

        Args:
            sinks: Destination for the synthesized records.
            hook_signals: Install SIGTERM/SIGINT handlers (main thread only).
            hook_threads: Treat uncaught exceptions in threads as fatal too.
            hard_exit: Terminates the process after an uncaught thread exception.
        """
        self._sinks = sinks
        self._hook_signals = hook_signals
        self._hook_threads = hook_threads
        self._hard_exit = hard_exit

        self._installed = False
        self._prev_excepthook: Callable[..., Any] | None = None
        self._prev_threading_excepthook: Callable[..., Any] | None = None
        self._prev_signal_handlers: dict[signal.Signals, Any] = {}
        self._prev_loop_handlers: dict[asyncio.AbstractEventLoop, LoopExceptionHandler | None] = {}
        self._original_new_event_loop: Callable[[], asyncio.AbstractEventLoop] | None = None
        self._loop_factory: Callable[[], asyncio.AbstractEventLoop] | None = None

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        """Register every hook, remembering whatever was there before."""
        if self._installed:
            return
        self._prev_excepthook = sys.excepthook
        sys.excepthook = self.handle_uncaught
        if self._hook_threads:
            self._prev_threading_excepthook = threading.excepthook
            threading.excepthook = self.handle_thread_exception
        if self._hook_signals:
            self._install_signal_handlers()
        atexit.register(self.handle_exit)
        self._hook_loop_creation()
        self._installed = True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self.attach_loop(loop)

    def teardown(self) -> None:
        """Restore the previous hooks."""
        if not self._installed:
            return
        atexit.unregister(self.handle_exit)
        self._unhook_loop_creation()
        for loop in list(self._prev_loop_handlers):
            self.detach_loop(loop)
        for signum, handler in self._prev_signal_handlers.items():
            signal.signal(signum, handler)
        self._prev_signal_handlers.clear()
        if self._prev_threading_excepthook is not None:
            threading.excepthook = self._prev_threading_excepthook
            self._prev_threading_excepthook = None
        if self._prev_excepthook is not None:
            sys.excepthook = self._prev_excepthook
            self._prev_excepthook = None
        self._installed = False

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.warning("logtap installed outside the main thread; SIGTERM/SIGINT are not hooked")
            return
        for signum in (signal.SIGTERM, signal.SIGINT):
            self._prev_signal_handlers[signum] = signal.signal(signum, self.handle_signal)

    def _hook_loop_creation(self) -> None:
        """Attach to every event loop created from now on, including the one `asyncio.run` makes."""
        original = asyncio.events.new_event_loop

        def new_event_loop() -> asyncio.AbstractEventLoop:
            loop = original()
            self.attach_loop(loop)
            return loop

        self._original_new_event_loop = original
        self._loop_factory = new_event_loop
        asyncio.events.new_event_loop = new_event_loop
        asyncio.new_event_loop = new_event_loop

    def _unhook_loop_creation(self) -> None:
        original, factory = self._original_new_event_loop, self._loop_factory
        if original is None:
            return
        # Only undo our own patch; someone may have wrapped it since.
        if asyncio.events.new_event_loop is factory:
            asyncio.events.new_event_loop = original
        if asyncio.new_event_loop is factory:
            asyncio.new_event_loop = original
        self._original_new_event_loop = None
        self._loop_factory = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Log unretrieved task/future exceptions raised on `loop` (default: the running loop)."""
        if loop is None:
            loop = asyncio.get_running_loop()
        for seen in [seen for seen in self._prev_loop_handlers if seen.is_closed()]:
            del self._prev_loop_handlers[seen]
        if loop in self._prev_loop_handlers:
            return
        self._prev_loop_handlers[loop] = loop.get_exception_handler()
        loop.set_exception_handler(self.handle_loop_exception)

    def detach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        if loop not in self._prev_loop_handlers:
            return
        previous = self._prev_loop_handlers.pop(loop)
        if not loop.is_closed():
            loop.set_exception_handler(previous)

    def _write(self, severity: Severity, args: list[Any]) -> None:
        try:
            self._sinks.write_record(build_record(severity, args))
        except Exception:  # noqa: BLE001 - the lifecycle action must still happen
            logger.debug("Failed to record %s", severity, exc_info=True)

    def handle_uncaught(
        self,
        exc_type: type[BaseException],
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """`sys.excepthook`: record the fault and show it as before.

        The interpreter then exits with status 1 on its own, running every
        atexit handler (ours closes the sinks).
        """
        self._write("UNCAUGHT_EXCEPTION", [describe_fault(exc_type, exc, tb)])
        if self._prev_excepthook is not None:
            self._prev_excepthook(exc_type, exc, tb)

    def handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        """`threading.excepthook`: record, show, then exit with status 1. `SystemExit` is ignored.

        A dying worker thread would otherwise leave the process running, so
        this path closes the sinks and terminates the process itself.
        """
        if issubclass(args.exc_type, SystemExit):
            if self._prev_threading_excepthook is not None:
                self._prev_threading_excepthook(args)
            return
        self._write("UNCAUGHT_EXCEPTION", [describe_fault(args.exc_type, args.exc_value, args.exc_traceback)])
        if self._prev_threading_excepthook is not None:
            self._prev_threading_excepthook(args)
        self._terminate(FAULT_EXIT_CODE)

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        """asyncio exception handler: record the reason and the pending task/future; non-fatal."""
        future = context.get("future") or context.get("task")
        reason = context.get("exception") or context.get("message")
        self._write(
            "UNHANDLED_REJECTION",
            [{"reason": reason, "future": repr(future) if future is not None else None}],
        )
        previous = self._prev_loop_handlers.get(loop)
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """SIGTERM/SIGINT handler: record a fixed message, then exit with status 0."""
        name = signal.Signals(signum).name
        severity: Severity = "SIGTERM" if name == "SIGTERM" else "SIGINT"
        self._write(severity, [SIGNAL_MESSAGES[severity]])
        # SystemExit unwinds the main thread normally; the atexit hook closes the sinks.
        sys.exit(SIGNAL_EXIT_CODE)

    def handle_exit(self) -> None:
        """atexit hook: flush and close the sinks without writing anything new."""
        self._sinks.close_all()

    def _terminate(self, code: int) -> None:
        self._sinks.close_all()
        self._hard_exit(code)
