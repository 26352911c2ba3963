"""
Pydantic data models for the SQL log writer.

A LogEntry is one trace event; LogData items are auxiliary payloads owned by
an entry. Both carry batch-scoped ids that are only meaningful during a single
flush attempt (see sqllog.batch.renumber).
"""

from __future__ import annotations

import json
import socket
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class LogEntryType(str, Enum):
    """Severity / kind of a trace event, valued by its one-character wire code."""

    CRITICAL = "C"  # fatal error or application crash
    ERROR = "E"  # recoverable error
    WARNING = "W"  # noncritical problem
    INFORMATION = "I"
    VERBOSE = "V"  # debugging information
    START = "<"  # starting of a logical operation
    STOP = ">"
    SUSPEND = "-"
    RESUME = "+"
    TRANSFER = "="  # change of correlation identity

    @property
    def code(self) -> str:
        return self.value


class LogDataType(str, Enum):
    """Format of a LogData payload."""

    TEXT = "T"
    JSON = "J"
    CALL_STACK = "C"
    OPERATION_STACK = "L"

    @property
    def code(self) -> str:
        return self.value


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class LogData(BaseModel):
    """Arbitrary textual data associated with a LogEntry."""

    entry_id: int = 0  # owner's batch-local id; set by renumber()
    type: LogDataType = LogDataType.TEXT
    data: str

    @classmethod
    def text(cls, data: str) -> "LogData":
        return cls(type=LogDataType.TEXT, data=data)

    @classmethod
    def from_object(cls, obj: Any) -> "LogData":
        return cls(type=LogDataType.JSON, data=json.dumps(obj, default=str))


class LogEntry(BaseModel):
    """One trace event destined for the log database."""

    id: int = 0  # batch-local id; set by renumber()
    date: datetime = Field(default_factory=utc_now)
    type: LogEntryType = LogEntryType.INFORMATION
    application: str = Field(min_length=1, max_length=32)
    environment: str = Field(min_length=1, max_length=32)
    component: str = Field(min_length=1, max_length=32)
    machine: str = Field(default_factory=socket.gethostname, max_length=128)
    source: str = Field(default="", max_length=128)
    process_id: Optional[int] = None
    thread_id: Optional[int] = None
    activity_id: Optional[UUID] = None
    message_id: int = 0
    message: str = ""
    data: List[LogData] = Field(default_factory=list)

    @field_validator("date")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("machine", mode="before")
    @classmethod
    def _trim_machine(cls, v):
        return v[:128] if isinstance(v, str) else v

    @property
    def has_data(self) -> bool:
        return bool(self.data)

    def add_data(self, data_type: LogDataType, data: str) -> LogData:
        item = LogData(type=data_type, data=data)
        self.data.append(item)
        return item
