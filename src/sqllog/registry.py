from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger

from .settings import WriterSettings
from .writer import SqlLogWriter

log = logger.bind(sqllog=True)


@dataclass
class _Slot:
    writer: SqlLogWriter
    refs: int = 0


class WriterRegistry:
    """Shares one SqlLogWriter per log database among many holders.

    Owned by the application's composition root: create one, hand writers
    out with acquire(), and close() it at shutdown. A writer is closed when
    its last holder releases it.

    Example:
        with WriterRegistry() as registry:
            writer = registry.acquire(WriterSettings(dsn=dsn))
            ...
            registry.release(writer)
    """

    def __init__(self) -> None:
        self._slots: Dict[str, _Slot] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def acquire(self, settings: WriterSettings, *, name: Optional[str] = None) -> SqlLogWriter:
        """Get the writer for settings.dsn, creating it on first use.

        Settings of later callers are ignored while the writer exists.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("WriterRegistry is closed")
            slot = self._slots.get(settings.dsn)
            if slot is None:
                writer = SqlLogWriter(settings, name=name or f"writer-{len(self._slots) + 1}")
                slot = self._slots[settings.dsn] = _Slot(writer)
                log.debug(f"Registered log writer {writer.name!r}")
            slot.refs += 1
            return slot.writer

    def get(self, dsn: str) -> Optional[SqlLogWriter]:
        with self._lock:
            slot = self._slots.get(dsn)
            return slot.writer if slot else None

    def release(self, writer: SqlLogWriter) -> None:
        """Drop one reference; closes the writer when none remain."""
        with self._lock:
            dsn = writer.settings.dsn
            slot = self._slots.get(dsn)
            if slot is None or slot.writer is not writer:
                return
            slot.refs -= 1
            if slot.refs > 0:
                return
            del self._slots[dsn]
        writer.close()

    def close(self) -> None:
        """Close every registered writer. Idempotent."""
        with self._lock:
            self._closed = True
            slots = list(self._slots.values())
            self._slots.clear()
        for slot in slots:
            slot.writer.close()

    def __enter__(self) -> "WriterRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
