"""
Custom exceptions for the SQL log writer.

Flush failures are classified so the worker can log them meaningfully; every
class is retried the same way, since a log batch has nowhere else to go.
"""


class SqlLogError(Exception):
    """Base error for the SQL log writer."""

    pass


class RetryableError(SqlLogError):
    """Connectivity or transmission failure; the batch stays queued."""

    pass


class ConstraintViolation(SqlLogError):
    """The sink rejected a row (unique, foreign key, check, length)."""

    pass


class TimeoutExceeded(SqlLogError):
    """The write_log call exceeded the command timeout."""

    pass


class WriterClosedError(SqlLogError):
    """An entry was offered to a writer that is shutting down or stopped."""

    pass


class FlushCancelled(SqlLogError):
    """A flush attempt was abandoned because shutdown cancelled the worker."""

    pass


def map_db_error(e: Exception) -> SqlLogError:
    import psycopg
    import psycopg.errors as E

    if isinstance(e, SqlLogError):
        return e
    if isinstance(e, E.QueryCanceled):
        return TimeoutExceeded(str(e))
    if isinstance(
        e,
        (
            E.UniqueViolation,
            E.CheckViolation,
            E.ForeignKeyViolation,
            E.NotNullViolation,
            E.StringDataRightTruncation,
        ),
    ):
        return ConstraintViolation(str(e))
    if isinstance(e, (E.SerializationFailure, E.DeadlockDetected, psycopg.OperationalError)):
        return RetryableError(str(e))
    if isinstance(e, (OSError, psycopg.InterfaceError)):
        return RetryableError(str(e))
    return SqlLogError(str(e))
