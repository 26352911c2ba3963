from __future__ import annotations

from typing import Optional

import psycopg
from loguru import logger
from psycopg_pool import ConnectionPool

log = logger.bind(sqllog=True)


class ConnectionManager:
    """Owns the flush worker's single connection to the log database.

    The connection is created lazily and checked before every use; a broken
    one is thrown away and replaced. Only the flush worker calls into this
    object, so it is not locked.
    """

    def __init__(
        self,
        dsn: str,
        *,
        application_name: Optional[str] = "sqllog",
        command_timeout: Optional[float] = 180.0,
        check_live: bool = False,
    ):
        self._dsn = dsn
        self._application_name = application_name
        self._command_timeout = command_timeout
        self._check_live = check_live
        self._conn: Optional[psycopg.Connection] = None

    @property
    def connection(self) -> Optional[psycopg.Connection]:
        return self._conn

    def ensure(self) -> psycopg.Connection:
        """Return an open connection, replacing the current one if it is broken."""
        conn = self._conn
        if conn is not None and not self._is_healthy(conn):
            log.warning("Log database connection is broken; reconnecting")
            self.discard()
            conn = None

        if conn is None:
            conn = self._connect()
            self._conn = conn
        return conn

    def discard(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except Exception as exc:
            log.debug(f"Ignoring error closing broken connection: {type(exc).__name__}: {exc}")

    def close(self) -> None:
        self.discard()

    # ---------- internals ----------

    def _is_healthy(self, conn: psycopg.Connection) -> bool:
        if conn.closed or conn.broken:
            return False
        if not self._check_live:
            return True
        try:
            ConnectionPool.check_connection(conn)
        except psycopg.Error as exc:
            log.debug(f"Connection check failed: {type(exc).__name__}: {exc}")
            return False
        return True

    def _connect(self) -> psycopg.Connection:
        kwargs = {}
        if self._application_name:
            kwargs["application_name"] = self._application_name
        if self._command_timeout:
            # statement_timeout is in milliseconds
            kwargs["options"] = f"-c statement_timeout={int(self._command_timeout * 1000)}"
        conn = psycopg.connect(self._dsn, **kwargs)
        log.debug("Opened log database connection")
        return conn
