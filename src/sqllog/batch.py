from __future__ import annotations

import json
from functools import partial
from itertools import chain
from typing import Callable, Optional, Sequence

from loguru import logger
from psycopg.types.json import Jsonb

from . import sql as q
from .connection import ConnectionManager
from .errors import FlushCancelled, map_db_error
from .models import LogEntry
from .queue import EntryQueue
from .rowset import DATA_ROWSET, ENTRY_ROWSET

log = logger.bind(sqllog=True)

_dumps = partial(json.dumps, default=str)


def renumber(entries: Sequence[LogEntry]) -> None:
    """Assign 0-based batch-local ids and point every child at its owner's id."""
    for i, entry in enumerate(entries):
        entry.id = i
        for d in entry.data:
            d.entry_id = i


def build_params(entries: Sequence[LogEntry]) -> dict:
    """The two set-oriented inputs of write_log, as jsonb rowsets."""
    data = chain.from_iterable(e.data for e in entries)
    return {
        "entry_rows": Jsonb(list(ENTRY_ROWSET.rows(entries)), dumps=_dumps),
        "data_rows": Jsonb(list(DATA_ROWSET.rows(data)), dumps=_dumps),
    }


class BatchWriter:
    """Writes the current contents of an EntryQueue to the sink in one call.

    Entries leave the queue only after the call commits, so a failed attempt
    loses nothing: the next attempt takes a fresh snapshot, which starts with
    the same entries (plus any enqueued since).
    """

    def __init__(
        self,
        queue: EntryQueue,
        connections: ConnectionManager,
        *,
        cancelled: Optional[Callable[[], bool]] = None,
    ):
        self._queue = queue
        self._connections = connections
        self._cancelled = cancelled or (lambda: False)

    def flush(self) -> int:
        """Run one flush attempt. Returns the number of entries written."""
        if self._queue.is_empty:
            return 0

        entries = self._queue.snapshot()
        renumber(entries)
        params = build_params(entries)

        if self._cancelled():
            raise FlushCancelled("flush cancelled before transmission")

        try:
            conn = self._connections.ensure()
            try:
                with conn.cursor() as cur:
                    cur.execute(q.WRITE_LOG, params)
                conn.commit()
            except Exception:
                self._rollback(conn)
                raise
        except Exception as e:
            raise map_db_error(e) from e

        # Committed; the snapshot is exactly the head of the queue.
        self._queue.dequeue(len(entries))
        log.debug(f"Wrote {len(entries)} log entries")
        return len(entries)

    def _rollback(self, conn) -> None:
        if conn.closed or conn.broken:
            return
        try:
            conn.rollback()
        except Exception as exc:
            log.debug(f"Rollback failed: {type(exc).__name__}: {exc}")
