"""Process-wide log interception with dual append-only file sinks.

Call `logtap.install()` once at process start. From then on:
- `print` and `logging.debug/info/warning/error` keep displaying as before and
  are also appended to `logs/app.log`;
- warnings, errors and fatal lifecycle events also go to `logs/error.log`;
- uncaught exceptions exit with status 1, SIGTERM/SIGINT exit with status 0,
  and unretrieved asyncio exceptions are logged without stopping the process.
"""

from .config import TapConfig, load_config
from .formatter import format_message, render_value
from .interceptor import DEFAULT_ENTRY_POINTS, EntryPoint, Interceptor
from .lifecycle import LifecycleHooks
from .models import SINK_ROUTES, LogRecord, Severity, SinkId
from .runtime import Runtime, current, install, run, teardown
from .sinks import LOG_DIR, FileSink, SinkManager

__all__ = [
    "DEFAULT_ENTRY_POINTS",
    "EntryPoint",
    "FileSink",
    "Interceptor",
    "LOG_DIR",
    "LifecycleHooks",
    "LogRecord",
    "Runtime",
    "SINK_ROUTES",
    "Severity",
    "SinkId",
    "SinkManager",
    "TapConfig",
    "current",
    "format_message",
    "install",
    "load_config",
    "render_value",
    "run",
    "teardown",
]
