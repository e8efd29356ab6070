"""
Exception classes raised by the data access layer.
"""
import sqlite3

import psycopg
import pymysql
import sqlalchemy as sa

# Driver-level failures wrapped into DataAccessError by the lifecycle helper.
DriverError = (
    sqlite3.Error,
    pymysql.err.Error,
    psycopg.Error,
    sa.exc.DBAPIError,
    )


def get_error_code(exc: BaseException) -> int | str:
    """Return the vendor error code carried by a driver exception.

    PyMySQL puts the numeric code in ``args[0]``, psycopg exposes the
    SQLSTATE and sqlite3 exposes ``sqlite_errorcode``. Returns 0 when the
    driver did not report one.
    """
    if isinstance(exc, sa.exc.DBAPIError) and exc.orig is not None:
        return get_error_code(exc.orig)
    if isinstance(exc, psycopg.Error):
        return exc.sqlstate or 0
    if isinstance(exc, sqlite3.Error):
        return getattr(exc, 'sqlite_errorcode', 0)
    if exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return 0


def _driver_message(exc: BaseException) -> str:
    if isinstance(exc, pymysql.err.Error) and len(exc.args) > 1:
        return str(exc.args[1])
    return str(exc)


class DatabaseError(Exception):
    """Base class for all sqlbean errors.
    """


class DataAccessError(DatabaseError):
    """Driver failure while creating, executing or reading a statement.

    Carries the SQL text of the failing callback when it provides one, plus
    the driver's error code and message.
    """

    def __init__(self, task: str, sql: str | None = None,
                 cause: BaseException | None = None) -> None:
        self.task = task
        self.sql = sql
        self.error_code = get_error_code(cause) if cause is not None else 0
        if cause is None:
            super().__init__(task)
            return
        super().__init__(
            f"{task} - SQL: {sql or ''} - {_driver_message(cause)} ({self.error_code})")
        self.__cause__ = cause


class TypeMismatchError(DatabaseError):
    """A mapped value cannot be assigned to the target property.
    """


class ConversionError(DatabaseError):
    """A converter failed to transform a column value.
    """


class UnsupportedOperationError(DatabaseError):
    """The connection does not support the requested operation.
    """


class IncorrectResultSizeError(DatabaseError):
    """A query returned an unexpected number of rows.
    """

    def __init__(self, expected_size: int, actual_size: int = -1,
                 message: str | None = None) -> None:
        self.expected_size = expected_size
        self.actual_size = actual_size
        if message is None:
            message = f'Incorrect result size: expected {expected_size}'
            if actual_size >= 0:
                message += f', actual {actual_size}'
        super().__init__(message)


class DataSourceInitError(DatabaseError):
    """The pooled data source could not be created.
    """


class ConnectionRetrieveError(DatabaseError):
    """A connection could not be obtained from the data source.
    """


class BeanInstantiationError(DatabaseError):
    """The mapped target class cannot be instantiated without arguments.
    """
