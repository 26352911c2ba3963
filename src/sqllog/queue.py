from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List

from .models import LogEntry

MAX_MESSAGE_LENGTH = 1024
NAME_LENGTH = 32  # application, environment, component
ORIGIN_LENGTH = 128  # machine, source


def truncate(s: str, length: int) -> str:
    return s if len(s) <= length else s[:length]


def clean(s: str) -> str:
    """Drop NUL characters and replace unpaired surrogates with "?".

    PostgreSQL text (and so jsonb input) accepts neither.
    """
    if "\x00" in s:
        s = s.replace("\x00", "")
    return s.encode("utf-8", "replace").decode("utf-8")


class EntryQueue:
    """Unbounded multi-producer / single-consumer FIFO of pending log entries.

    Producers only append. The single consumer (the flush worker) reads a
    snapshot and later removes that many items from the head; nothing else
    removes items, so removal by count always hits the snapshotted entries.
    """

    def __init__(self, max_message_length: int = MAX_MESSAGE_LENGTH):
        if max_message_length <= 0:
            raise ValueError("max_message_length must be > 0")
        self._max_message_length = max_message_length
        self._items: Deque[LogEntry] = deque()
        self._lock = threading.Lock()

    @property
    def max_message_length(self) -> int:
        return self._max_message_length

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    def enqueue(self, entry: LogEntry) -> None:
        if entry is None:
            raise ValueError("entry must not be None")
        _clean_entry(entry)
        entry.message = truncate(entry.message, self._max_message_length)
        with self._lock:
            self._items.append(entry)

    def snapshot(self) -> List[LogEntry]:
        """Current contents in FIFO order; the queue itself is untouched."""
        with self._lock:
            return list(self._items)

    def dequeue(self, count: int) -> int:
        """Remove up to `count` entries from the head. Returns number removed."""
        removed = 0
        with self._lock:
            while removed < count and self._items:
                self._items.popleft()
                removed += 1
        return removed


def _clean_entry(entry: LogEntry) -> None:
    # Fields may have been assigned after validation; the sink rejects
    # oversized or unstorable text and would fail every retry of the batch
    entry.application = truncate(clean(entry.application), NAME_LENGTH)
    entry.environment = truncate(clean(entry.environment), NAME_LENGTH)
    entry.component = truncate(clean(entry.component), NAME_LENGTH)
    entry.machine = truncate(clean(entry.machine), ORIGIN_LENGTH)
    entry.source = truncate(clean(entry.source or ""), ORIGIN_LENGTH)
    entry.message = clean(entry.message or "")
    for d in entry.data:
        d.data = clean(d.data)
