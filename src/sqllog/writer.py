"""
Background write-behind writer for the log database.

Producers call enqueue() from any thread; one worker thread batches
everything queued into a single write_log call, either every
`autoflush_wait` seconds or as soon as flush() is requested. Failed writes
keep their entries queued and are retried with a linear backoff.

Usage:
    writer = SqlLogWriter(WriterSettings(dsn="postgresql://..."))
    writer.enqueue(LogEntry(application="app", environment="prod", component="api", ...))
    writer.flush()   # optional: write soon instead of at the next autoflush
    writer.close()   # final flush, bounded by close_wait
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Optional, Union

from loguru import logger

from .batch import BatchWriter
from .connection import ConnectionManager
from .errors import FlushCancelled, WriterClosedError, map_db_error
from .metrics import (
    ENTRIES_WRITTEN_TOTAL,
    FLUSH_LATENCY,
    FLUSH_TOTAL,
    QUEUE_DEPTH,
    RETRY_WAIT_SECONDS,
)
from .models import LogEntry
from .queue import EntryQueue
from .retry import RetryBackoff
from .settings import WriterSettings

log = logger.bind(sqllog=True)


class WriterState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    EXITING = "exiting"
    STOPPED = "stopped"


class SqlLogWriter:
    """Write-behind queue of log entries with one background flush thread.

    States: CREATED -> RUNNING (worker started by the constructor) ->
    EXITING (first close()) -> STOPPED (worker returned, or was abandoned
    after close_wait).
    """

    def __init__(
        self,
        settings: Union[WriterSettings, str],
        *,
        name: str = "default",
        backoff: Optional[RetryBackoff] = None,
        connections: Optional[ConnectionManager] = None,
    ):
        if isinstance(settings, str):
            settings = WriterSettings(dsn=settings)
        self._settings = settings
        self._name = name

        self._queue = EntryQueue(settings.max_message_length)
        self._connections = connections or ConnectionManager(
            settings.dsn,
            application_name=settings.application_name,
            command_timeout=settings.command_timeout,
            check_live=settings.check_connection,
        )
        self._backoff = backoff or RetryBackoff(
            settings.retry_wait_increment, settings.retry_wait_max
        )

        self._flush_event = threading.Event()  # auto-reset: cleared by the worker
        self._exiting = threading.Event()
        self._cancel = threading.Event()
        self._state_lock = threading.Lock()
        self._state = WriterState.CREATED
        self._flush_time = 0.0

        self._batch = BatchWriter(self._queue, self._connections, cancelled=self._cancel.is_set)
        self._thread = threading.Thread(
            target=self._run, name=f"SqlLogWriter-{name}", daemon=True
        )
        self._thread.start()
        self._set_state(WriterState.RUNNING, only_from=WriterState.CREATED)

    # --------------------------- public API

    @property
    def name(self) -> str:
        return self._name

    @property
    def settings(self) -> WriterSettings:
        return self._settings

    @property
    def state(self) -> WriterState:
        with self._state_lock:
            return self._state

    @property
    def retries(self) -> int:
        return self._backoff.retries

    @property
    def pending(self) -> int:
        return len(self._queue)

    def enqueue(self, entry: LogEntry) -> None:
        """Queue an entry for writing. Never blocks on I/O."""
        if entry is None:
            raise ValueError("entry must not be None")
        # Held only for the append, so every accepted entry precedes the final flush
        with self._state_lock:
            if self._exiting.is_set():
                raise WriterClosedError(f"writer {self._name!r} is closed")
            self._queue.enqueue(entry)
        QUEUE_DEPTH.labels(self._name).inc()

    def flush(self) -> None:
        """Ask the worker to write queued entries now. Does not wait."""
        self._flush_event.set()

    def close(self) -> None:
        """Flush what is queued and stop the worker, waiting at most close_wait.

        Idempotent and never raises; a flush that cannot finish in time is
        abandoned and its entries are lost with the process.
        """
        with self._state_lock:
            if self._exiting.is_set():
                return
            self._exiting.set()
            if self._state is WriterState.RUNNING:
                self._state = WriterState.EXITING

        self._flush_event.set()

        if self._thread is threading.current_thread():
            return

        self._thread.join(self._settings.close_wait)
        if self._thread.is_alive():
            self._cancel.set()
            log.warning(
                f"Log writer {self._name!r} did not finish within "
                f"{self._settings.close_wait:g}s; abandoning {self.pending} queued entries"
            )
            self._set_state(WriterState.STOPPED)

    def __enter__(self) -> "SqlLogWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------------------- worker

    def _run(self) -> None:
        self._schedule_autoflush()
        try:
            while True:
                if self._cancel.is_set():
                    return
                if not self._exiting.is_set():
                    self._wait_before_flush()
                final = self._exiting.is_set()

                try:
                    self._flush_once()
                    self._backoff.on_success()
                except FlushCancelled:
                    return
                except Exception as exc:
                    self._on_flush_error(exc)
                    if not final:
                        self._wait_before_retry()

                if final or self._cancel.is_set():
                    return
        finally:
            self._connections.close()
            self._set_state(WriterState.STOPPED)
            log.debug(f"Log writer {self._name!r} stopped")

    def _schedule_autoflush(self) -> None:
        self._flush_time = time.monotonic() + self._settings.autoflush_wait

    def _wait_before_flush(self) -> None:
        remaining = self._flush_time - time.monotonic()
        if remaining > 0:
            self._flush_event.wait(remaining)
        self._flush_event.clear()
        # Reschedule before flushing so a slow flush cannot delay the next one
        self._schedule_autoflush()

    def _flush_once(self) -> None:
        t0 = time.perf_counter()
        count = self._batch.flush()
        if count == 0:
            FLUSH_TOTAL.labels(self._name, "empty").inc()
            return
        FLUSH_LATENCY.labels(self._name).observe(time.perf_counter() - t0)
        FLUSH_TOTAL.labels(self._name, "success").inc()
        ENTRIES_WRITTEN_TOTAL.labels(self._name).inc(count)
        QUEUE_DEPTH.labels(self._name).set(len(self._queue))

    def _on_flush_error(self, exc: Exception) -> None:
        err = map_db_error(exc)
        FLUSH_TOTAL.labels(self._name, "failure").inc()
        log.opt(exception=exc).debug("Flush failure detail")
        log.warning(
            f"Log writer {self._name!r} flush failed ({type(err).__name__}): {err}; "
            f"{self.pending} entries kept"
        )

    def _wait_before_retry(self) -> None:
        # Linear backoff up to the ceiling; only shutdown interrupts it.
        duration = self._backoff.on_failure()
        RETRY_WAIT_SECONDS.labels(self._name).set(duration)
        if duration > 0:
            log.warning(f"Retrying log flush after {duration:g}s (retry {self._backoff.retries})")
            self._exiting.wait(duration)

    def _set_state(self, state: WriterState, only_from: Optional[WriterState] = None) -> None:
        with self._state_lock:
            if only_from is not None and self._state is not only_from:
                return
            self._state = state
