"""
Loguru sink that feeds an SqlLogWriter.

    writer = SqlLogWriter(settings)
    sink = SqlLogSink(writer, application="billing", environment="prod", component="api")
    logger.add(sink, level="INFO")

    logger.bind(activity_id=request_id).info("charged card")

Recognized `extra` keys: activity_id, message_id, entry_type (a LogEntryType,
for start/stop/transfer events) and operation_stack (list of correlation
scopes). Anything else in `extra` is stored as a JSON data item; exception
tracebacks are stored as a call stack.
"""

from __future__ import annotations

import traceback
from typing import Any, Optional
from uuid import UUID

from .errors import WriterClosedError
from .models import LogData, LogDataType, LogEntry, LogEntryType
from .writer import SqlLogWriter

_RESERVED_EXTRA = {"activity_id", "message_id", "entry_type", "operation_stack", "sqllog"}


def entry_type_for_level(level_no: int) -> LogEntryType:
    if level_no >= 50:
        return LogEntryType.CRITICAL
    if level_no >= 40:
        return LogEntryType.ERROR
    if level_no >= 30:
        return LogEntryType.WARNING
    if level_no >= 20:
        return LogEntryType.INFORMATION
    return LogEntryType.VERBOSE


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_entry_type(value: Any) -> Optional[LogEntryType]:
    try:
        return LogEntryType(value) if value else None
    except ValueError:
        return None


def _as_uuid(value: Any) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class SqlLogSink:
    """Callable loguru sink turning records into LogEntry objects."""

    def __init__(
        self,
        writer: SqlLogWriter,
        *,
        application: str,
        environment: str = "Default",
        component: str = "Default",
    ):
        self._writer = writer
        self.application = application
        self.environment = environment
        self.component = component

    def __call__(self, message) -> None:
        record = message.record
        # The writer's own diagnostics must not be written back through it.
        if record["extra"].get("sqllog"):
            return
        entry = self.build_entry(record)
        try:
            self._writer.enqueue(entry)
        except WriterClosedError:
            # Records logged during or after shutdown are dropped
            return

    def build_entry(self, record: dict) -> LogEntry:
        extra = record["extra"]
        entry_type = extra.get("entry_type")
        entry = LogEntry(
            date=record["time"],
            type=_as_entry_type(entry_type) or entry_type_for_level(record["level"].no),
            application=self.application,
            environment=self.environment,
            component=self.component,
            source=(record["name"] or "")[:128],
            process_id=record["process"].id,
            thread_id=record["thread"].id,
            activity_id=_as_uuid(extra.get("activity_id")),
            message_id=_as_int(extra.get("message_id", 0)),
            message=record["message"],
        )

        exc = record["exception"]
        if exc is not None and exc.type is not None:
            stack = "".join(traceback.format_exception(exc.type, exc.value, exc.traceback))
            entry.add_data(LogDataType.CALL_STACK, stack)

        operation_stack = extra.get("operation_stack")
        if operation_stack:
            entry.add_data(LogDataType.OPERATION_STACK, "\n".join(str(s) for s in operation_stack))

        rest = {k: v for k, v in extra.items() if k not in _RESERVED_EXTRA}
        if rest:
            entry.data.append(LogData.from_object(rest))
        return entry

    def flush(self) -> None:
        self._writer.flush()

    def stop(self) -> None:
        """Expedite pending entries; closing the writer is left to its owner."""
        self._writer.flush()
