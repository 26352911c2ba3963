"""
sqllog: background write-behind shipping of trace events to PostgreSQL.

Many threads enqueue LogEntry objects; one worker thread writes everything
queued to the database in a single write_log call per flush, retrying with a
capped linear backoff while the database is unavailable.

Usage:
    from sqllog import SqlLogWriter, WriterSettings, LogEntry

    with SqlLogWriter(WriterSettings(dsn="postgresql://...")) as writer:
        writer.enqueue(LogEntry(application="app", environment="prod",
                                component="api", message="hello"))
"""

from .errors import (
    ConstraintViolation,
    FlushCancelled,
    RetryableError,
    SqlLogError,
    TimeoutExceeded,
    WriterClosedError,
)
from .handler import SqlLogSink
from .models import LogData, LogDataType, LogEntry, LogEntryType
from .registry import WriterRegistry
from .retry import RetryBackoff
from .settings import WriterSettings, get_settings
from .writer import SqlLogWriter, WriterState

__version__ = "1.0.0"
__all__ = [
    "SqlLogWriter",
    "WriterState",
    "WriterSettings",
    "get_settings",
    "WriterRegistry",
    "RetryBackoff",
    "SqlLogSink",
    "LogEntry",
    "LogEntryType",
    "LogData",
    "LogDataType",
    "SqlLogError",
    "RetryableError",
    "ConstraintViolation",
    "TimeoutExceeded",
    "WriterClosedError",
    "FlushCancelled",
]
