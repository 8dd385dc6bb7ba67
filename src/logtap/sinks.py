"""Append-only file sinks (storage backends).

Each sink owns a bounded queue drained by a single writer thread, so:
- callers never wait on disk I/O (writes are fire-and-forget),
- lines land in the file in exactly the order they were issued,
- overload drops lines (and counts them) instead of blocking the caller.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Final

from .models import SINK_IDS, LogRecord, SinkId, utc_now

logger = logging.getLogger(__name__)

LOG_DIR: Final[Path] = Path("logs")
SINK_FILES: Final[dict[SinkId, str]] = {"app": "app.log", "error": "error.log"}

_STOP = object()


class FileSink:
    """A single append-only log file fed by a background writer thread.

    Lines go through a `queue.SimpleQueue`, whose `put` is safe to call from a
    signal handler that interrupted another `put` on the same thread.
    """

    def __init__(self, path: Path, *, max_queue_size: int = 10000) -> None:
        """Open `path` in append mode and start the writer thread.

        Args:
            path: File to append to; never truncated.
            max_queue_size: Bound for in-memory buffering; lines are dropped
                when the backlog reaches it to avoid blocking the caller.
        """
        self.path = path
        self._file: IO[str] = open(path, "a", encoding="utf-8")
        self._queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._max_backlog = max_queue_size
        self._enqueued = 0
        self._written = 0
        self._closed = False
        self._close_lock = threading.Lock()
        # Guards the admission check and every counter. Reentrant: a signal
        # handler may write while the same thread is inside `write`.
        self._count_lock = threading.RLock()

        # Degradation tracking: counts and time window.
        self._write_failures = 0
        self._dropped = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

        self._worker = threading.Thread(target=self._run_worker, name=f"logtap-{path.stem}-writer", daemon=True)
        self._worker.start()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def backlog(self) -> int:
        """Lines accepted but not yet written."""
        return self._enqueued - self._written

    def write(self, line: str) -> None:
        """Queue a line for appending (non-blocking)."""
        if self._closed:
            return
        with self._count_lock:
            if self.backlog >= self._max_backlog:
                self._dropped += 1
                self._note_failure()
                return
            self._enqueued += 1
            self._queue.put(line)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every line queued so far has been written. Returns False on timeout."""
        if self._closed:
            return True
        marker = threading.Event()
        self._queue.put(marker)
        return marker.wait(timeout)

    def close(self, timeout: float | None = None) -> None:
        """Drain the queue, then flush and close the file.

        Safe to call multiple times.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_STOP)
        self._worker.join(timeout)
        if self._worker.is_alive():
            logger.warning("Writer for %s did not drain within %ss; closing anyway", self.path, timeout)
        try:
            self._file.flush()
        except (OSError, ValueError):
            self._note_failure()
        finally:
            self._file.close()

    def _run_worker(self) -> None:
        """Background loop that drains the queue into the file."""
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            if isinstance(item, threading.Event):
                item.set()
                continue
            try:
                self._file.write(item)
                self._file.flush()
            except (OSError, ValueError):
                self._note_failure()
            finally:
                with self._count_lock:
                    self._written += 1

    def _note_failure(self) -> None:
        now = utc_now()
        with self._count_lock:
            first = self._first_failure_at is None
            self._write_failures += 1
            self._first_failure_at = self._first_failure_at or now
            self._last_failure_at = now
        if first:
            logger.warning("Log sink %s is degraded; lines are being lost", self.path)

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        with self._count_lock:
            return {
                "accepted": self._enqueued,
                "write_failures": self._write_failures,
                "dropped": self._dropped,
                "first_failure_at": self._first_failure_at,
                "last_failure_at": self._last_failure_at,
            }


class SinkManager:
    """Owns the `app` and `error` sinks and the directory they live in.

    Sinks are opened on first use and closed once by `close_all()`; no other
    component opens these paths.
    """

    def __init__(self, *, max_queue_size: int = 10000, close_timeout_s: float | None = 5.0) -> None:
        self._max_queue_size = max_queue_size
        self._close_timeout_s = close_timeout_s
        self._sinks: dict[SinkId, FileSink] = {}
        # Reentrant: a signal handler may log while the main thread holds it.
        self._lock = threading.RLock()
        self._closed = False

    @property
    def log_dir(self) -> Path:
        return LOG_DIR

    def path_for(self, sink_id: SinkId) -> Path:
        """Path of the file backing `sink_id`."""
        return LOG_DIR / SINK_FILES[sink_id]

    def ensure_log_directory(self) -> None:
        """Create the log directory (and parents); `OSError` propagates."""
        LOG_DIR.mkdir(parents=True, exist_ok=True)

    def open(self, sink_id: SinkId) -> FileSink:
        """Open the sink for `sink_id`, or return it if already open."""
        if sink_id not in SINK_FILES:
            raise KeyError(f"Unknown sink {sink_id!r}; expected one of {SINK_IDS}")
        with self._lock:
            sink = self._sinks.get(sink_id)
            if sink is None:
                self.ensure_log_directory()
                sink = FileSink(self.path_for(sink_id), max_queue_size=self._max_queue_size)
                self._sinks[sink_id] = sink
            return sink

    def open_all(self) -> None:
        """Open every sink up front (startup fails here if the files cannot be opened)."""
        for sink_id in SINK_IDS:
            self.open(sink_id)

    def write(self, sink_id: SinkId, line: str) -> None:
        """Append an already newline-terminated line to a sink (fire-and-forget)."""
        if self._closed:
            return
        self.open(sink_id).write(line)

    def write_record(self, record: LogRecord) -> str:
        """Render a record once and write it to every sink it routes to."""
        line = record.render()
        for sink_id in record.sinks:
            self.write(sink_id, line)
        return line

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for every open sink to finish writing its queued lines."""
        with self._lock:
            sinks = list(self._sinks.values())
        return all(sink.flush(timeout) for sink in sinks)

    def close_all(self) -> None:
        """Flush and close both sinks. Only the first call has any effect."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sinks = list(self._sinks.values())
        for sink in sinks:
            sink.close(self._close_timeout_s)

    @property
    def closed(self) -> bool:
        return self._closed

    def degraded_status(self) -> dict[SinkId, dict[str, Any]]:
        """Per-sink degraded-status snapshots for every opened sink."""
        with self._lock:
            return {sink_id: sink.degraded_status() for sink_id, sink in self._sinks.items()}
