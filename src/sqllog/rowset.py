"""
Generic object-to-rowset mapping.

A RowsetMap describes how to turn an object into a row: an ordered list of
fields, each with a column name, a database wire type and an accessor. The
same map drives the jsonb rowsets sent to write_log and the composite type
DDL that the stored procedure uses to read them back, so the two cannot drift.

    ENTRY_ROWSET = (
        RowsetMap.build()
        .field("id", "int", lambda e: e.id)
        .field("message", "varchar(1024)", lambda e: e.message)
        .complete()
    )
    ENTRY_ROWSET.record(entry)  # {"id": 0, "message": "..."}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Iterator, List, Sequence, TypeVar

from psycopg import sql as psql

from .models import LogData, LogEntry

T = TypeVar("T")


@dataclass(frozen=True)
class Field(Generic[T]):
    name: str
    db_type: str
    getter: Callable[[T], Any]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("field name is required")
        if not self.db_type:
            raise ValueError(f"field {self.name!r} needs a db_type")
        if not callable(self.getter):
            raise TypeError(f"field {self.name!r} getter must be callable")

    def get(self, obj: T) -> Any:
        return self.getter(obj)


class RowsetMap(Generic[T]):
    """Ordered, immutable set of fields describing one row shape."""

    def __init__(self, fields: Sequence[Field[T]] = ()):
        self._fields: tuple[Field[T], ...] = tuple(fields)
        self._ordinals = {f.name: i for i, f in enumerate(self._fields)}
        if len(self._ordinals) != len(self._fields):
            raise ValueError("field names must be unique")

    @staticmethod
    def build() -> "RowsetMapBuilder":
        return RowsetMapBuilder()

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[Field[T]]:
        return iter(self._fields)

    def __getitem__(self, ordinal: int) -> Field[T]:
        if not 0 <= ordinal < len(self._fields):
            raise IndexError(f"ordinal {ordinal} is out of range for {len(self._fields)} fields")
        return self._fields[ordinal]

    @property
    def names(self) -> List[str]:
        return [f.name for f in self._fields]

    def ordinal(self, name: str) -> int:
        try:
            return self._ordinals[name]
        except KeyError:
            raise KeyError(f"{name!r} is not a valid column name") from None

    def row(self, obj: T) -> tuple:
        return tuple(f.get(obj) for f in self._fields)

    def record(self, obj: T) -> dict[str, Any]:
        return {f.name: f.get(obj) for f in self._fields}

    def rows(self, objs: Iterable[T]) -> Iterator[dict[str, Any]]:
        """Stream records lazily; objs is consumed once."""
        for obj in objs:
            yield self.record(obj)

    def composite_type_ddl(self, type_name: str) -> psql.Composed:
        """CREATE TYPE <type_name> AS (<name> <db_type>, ...)."""
        cols = psql.SQL(", ").join(
            psql.SQL("{} {}").format(psql.Identifier(f.name), psql.SQL(f.db_type))
            for f in self._fields
        )
        return psql.SQL("CREATE TYPE {} AS ({})").format(psql.Identifier(type_name), cols)


class RowsetMapBuilder(Generic[T]):
    def __init__(self) -> None:
        self._fields: list[Field[T]] = []

    def field(self, name: str, db_type: str, getter: Callable[[T], Any]) -> "RowsetMapBuilder[T]":
        self._fields.append(Field(name, db_type, getter))
        return self

    def complete(self) -> RowsetMap[T]:
        return RowsetMap(self._fields)


# ---------------------------------------------------------------- wire shapes

ENTRY_ROWSET: RowsetMap[LogEntry] = (
    RowsetMap.build()
    .field("id", "int", lambda e: e.id)
    .field("date", "timestamptz(3)", lambda e: e.date)
    .field("type_code", "char(1)", lambda e: e.type.code)
    .field("application", "varchar(32)", lambda e: e.application)
    .field("environment", "varchar(32)", lambda e: e.environment)
    .field("component", "varchar(32)", lambda e: e.component)
    .field("machine", "varchar(128)", lambda e: e.machine)
    .field("source", "varchar(128)", lambda e: e.source)
    .field("process_id", "int", lambda e: e.process_id)
    .field("thread_id", "bigint", lambda e: e.thread_id)
    .field("activity_id", "uuid", lambda e: e.activity_id)
    .field("message_id", "int", lambda e: e.message_id)
    .field("message", "varchar(1024)", lambda e: e.message)
    .complete()
)

DATA_ROWSET: RowsetMap[LogData] = (
    RowsetMap.build()
    .field("entry_id", "int", lambda d: d.entry_id)
    .field("type_code", "char(1)", lambda d: d.type.code)
    .field("data", "text", lambda d: d.data)
    .complete()
)
