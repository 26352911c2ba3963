"""
Schema and statements for the PostgreSQL log sink.

The database side of a flush is the write_log procedure: it receives the
batch as two jsonb arrays (entry rows and data rows, shaped by the rowset
maps) and, in the caller's transaction,

  1. upserts one `log` row per distinct (application, environment, component),
  2. allocates a durable id for every entry row and records the exact
     batch-local -> durable mapping,
  3. inserts the entries and then the data rows joined through that mapping.
"""

from __future__ import annotations

import psycopg
from psycopg import sql as psql

from .models import LogDataType, LogEntryType
from .rowset import DATA_ROWSET, ENTRY_ROWSET

ENTRY_ROW_TYPE = "log_entry_row"
DATA_ROW_TYPE = "log_data_row"

# Single round trip per flush
WRITE_LOG = "CALL write_log(%(entry_rows)s, %(data_rows)s)"

HEALTH = "SELECT 1"

_ENTRY_TYPES = {
    LogEntryType.CRITICAL: ("Critical", "Fatal error or application crash"),
    LogEntryType.ERROR: ("Error", "Recoverable error"),
    LogEntryType.WARNING: ("Warning", "Noncritical problem"),
    LogEntryType.INFORMATION: ("Information", "Informational message"),
    LogEntryType.VERBOSE: ("Verbose", "Debugging information"),
    LogEntryType.START: ("Start", "Starting of a logical operation"),
    LogEntryType.STOP: ("Stop", "Stopping of a logical operation"),
    LogEntryType.SUSPEND: ("Suspend", "Suspension of a logical operation"),
    LogEntryType.RESUME: ("Resume", "Resumption of a logical operation"),
    LogEntryType.TRANSFER: ("Transfer", "Change of correlation identity"),
}

_DATA_TYPES = {
    LogDataType.CALL_STACK: ("Call Stack", "Call stack"),
    LogDataType.OPERATION_STACK: ("Logical Op Stack", "Logical operation stack"),
    LogDataType.TEXT: ("Text", "Miscellaneous text"),
    LogDataType.JSON: ("JSON", "Data in JSON format"),
}

TABLES = """
CREATE TABLE IF NOT EXISTS log (
    id              integer GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
    application     varchar(32)     NOT NULL,
    environment     varchar(32)     NOT NULL,
    component       varchar(32)     NOT NULL,
    CONSTRAINT log_uq_application_environment_component
        UNIQUE (application, environment, component)
);

CREATE TABLE IF NOT EXISTS log_entry_type (
    code            char(1)         PRIMARY KEY,
    name            varchar(20)     NOT NULL UNIQUE,
    description     varchar(100)    NOT NULL
);

CREATE TABLE IF NOT EXISTS log_entry (
    id              bigint GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
    date            timestamptz(3)  NOT NULL DEFAULT now(),
    type_code       char(1)         NOT NULL REFERENCES log_entry_type (code),
    log_id          integer         NOT NULL REFERENCES log (id),
    machine         varchar(128)    NOT NULL,   -- host where the entry originated
    source          varchar(128)        NULL,   -- logger / trace source name
    process_id      integer             NULL,
    thread_id       bigint              NULL,
    activity_id     uuid                NULL,   -- logical activity (correlation id)
    message_id      integer         NOT NULL,   -- kind of message, or 0
    message         varchar(1024)       NULL
);

CREATE INDEX IF NOT EXISTS log_entry_ix_date ON log_entry (date);
CREATE INDEX IF NOT EXISTS log_entry_ix_log_id
    ON log_entry (log_id) INCLUDE (machine, process_id, thread_id, type_code);

CREATE TABLE IF NOT EXISTS log_data_type (
    code            char(1)         PRIMARY KEY,
    name            varchar(20)     NOT NULL UNIQUE,
    description     varchar(100)    NOT NULL
);

CREATE TABLE IF NOT EXISTS log_data (
    id              bigint GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
    entry_id        bigint          NOT NULL REFERENCES log_entry (id) ON DELETE CASCADE,
    type_code       char(1)         NOT NULL REFERENCES log_data_type (code),
    data            text            NOT NULL
);

CREATE INDEX IF NOT EXISTS log_data_ix_entry_id ON log_data (entry_id);
"""

WRITE_LOG_PROCEDURE = f"""
CREATE OR REPLACE PROCEDURE write_log(entry_rows jsonb, data_rows jsonb)
LANGUAGE plpgsql
AS $$
BEGIN
    INSERT INTO log (application, environment, component)
    SELECT DISTINCT e.application, e.environment, e.component
    FROM jsonb_populate_recordset(NULL::{ENTRY_ROW_TYPE}, entry_rows) e
    ON CONFLICT (application, environment, component) DO NOTHING;

    DROP TABLE IF EXISTS pg_temp.log_entry_ids;
    CREATE TEMP TABLE log_entry_ids (
        old_id      integer     PRIMARY KEY,
        new_id      bigint      NOT NULL
    ) ON COMMIT DROP;

    INSERT INTO log_entry_ids (old_id, new_id)
    SELECT e.id, nextval(pg_get_serial_sequence('log_entry', 'id'))
    FROM jsonb_populate_recordset(NULL::{ENTRY_ROW_TYPE}, entry_rows) e
    ORDER BY e.id;

    INSERT INTO log_entry (
        id, date, type_code, log_id, machine, source,
        process_id, thread_id, activity_id, message_id, message
    )
    SELECT
        x.new_id, e.date, e.type_code, l.id, e.machine, e.source,
        e.process_id, e.thread_id, e.activity_id, e.message_id, e.message
    FROM jsonb_populate_recordset(NULL::{ENTRY_ROW_TYPE}, entry_rows) e
    JOIN log_entry_ids x ON x.old_id = e.id
    JOIN log l
        ON  l.application = e.application
        AND l.environment = e.environment
        AND l.component   = e.component
    ORDER BY e.id;

    INSERT INTO log_data (entry_id, type_code, data)
    SELECT x.new_id, d.type_code, d.data
    FROM jsonb_populate_recordset(NULL::{DATA_ROW_TYPE}, data_rows) d
    JOIN log_entry_ids x ON x.old_id = d.entry_id;
END;
$$
"""


def _seed(table: str, rows: dict) -> psql.Composed:
    values = psql.SQL(", ").join(
        psql.SQL("({}, {}, {})").format(
            psql.Literal(kind.code), psql.Literal(name), psql.Literal(description)
        )
        for kind, (name, description) in rows.items()
    )
    return psql.SQL(
        "INSERT INTO {} (code, name, description) VALUES {} ON CONFLICT (code) DO NOTHING"
    ).format(psql.Identifier(table), values)


def apply_schema(conn: psycopg.Connection) -> None:
    """Create or update every sink object. Safe to run repeatedly."""
    with conn.cursor() as cur:
        cur.execute(TABLES)
        cur.execute(_seed("log_entry_type", _ENTRY_TYPES))
        cur.execute(_seed("log_data_type", _DATA_TYPES))
        # CREATE TYPE has no IF NOT EXISTS
        for name, rowset in ((ENTRY_ROW_TYPE, ENTRY_ROWSET), (DATA_ROW_TYPE, DATA_ROWSET)):
            cur.execute("SELECT to_regtype(%s)", (name,))
            row = cur.fetchone()
            if row is None or row[0] is None:
                cur.execute(rowset.composite_type_ddl(name))
        cur.execute(WRITE_LOG_PROCEDURE)
    conn.commit()


def schema_script() -> str:
    """Every sink object as one DDL script, e.g. for review or psql.

    Unlike apply_schema() the row types are created unconditionally, so the
    script is meant for an empty database.
    """
    statements = [
        TABLES.strip(),
        _seed("log_entry_type", _ENTRY_TYPES).as_string(),
        _seed("log_data_type", _DATA_TYPES).as_string(),
        ENTRY_ROWSET.composite_type_ddl(ENTRY_ROW_TYPE).as_string(),
        DATA_ROWSET.composite_type_ddl(DATA_ROW_TYPE).as_string(),
        WRITE_LOG_PROCEDURE.strip(),
    ]
    return "\n\n".join(s if s.endswith(";") else s + ";" for s in statements) + "\n"
