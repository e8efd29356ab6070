"""
Statement and result cursor wrappers over DB-API 2.0 cursors (PEP-249).

- ResultSet: forward-only cursor over a query result with 1-based column access
- Statement: executes ad-hoc SQL
- PreparedStatement: positional parameters bound through typed setters,
  batching and generated keys
"""
import datetime
import logging
import time
from collections.abc import Iterator, Sequence
from decimal import Decimal
from functools import wraps
from typing import IO, TYPE_CHECKING, Any

from sqlbean.sql import count_placeholders, standardize_placeholders
from sqlbean.types import TypeConverter, get_result_set_value

if TYPE_CHECKING:
    from sqlbean.connection import Connection

logger = logging.getLogger(__name__)

__all__ = [
    'ResultSet',
    'ResultSetMetaData',
    'Statement',
    'PreparedStatement',
    'SUCCESS_NO_INFO',
]

# Batch entry that succeeded with an unknown row count
SUCCESS_NO_INFO = -2


def dumpsql(func):
    """Decorator for logging SQL statements and their parameters."""
    @wraps(func)
    def wrapper(self, *args: Any, **kwargs: Any):
        sql = args[0] if args and isinstance(args[0], str) else self.sql
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nparams: {len(self._params)}')
        try:
            return func(self, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}')
            raise
        finally:
            logger.debug(f'Query time: {time.time() - start:.4f}s')
    return wrapper


def dumpsql_many(func):
    """Decorator for logging batched executions."""
    @wraps(func)
    def wrapper(self, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{self.sql}\nbatch: {len(self._batch)} rows')
        try:
            return func(self, *args, **kwargs)
        except Exception:
            logger.error(f'Error with batch:\nSQL:\n{self.sql}')
            raise
        finally:
            logger.debug(f'Batch time: {time.time() - start:.4f}s')
    return wrapper


class ResultSetMetaData:
    """Column labels of a result, built from ``cursor.description``.
    """

    def __init__(self, description: Sequence | None) -> None:
        self._columns = [
            (getattr(d, 'name', None) or d[0]) for d in (description or [])
        ]

    @property
    def column_count(self) -> int:
        return len(self._columns)

    def get_column_label(self, index: int) -> str:
        """Return the label (the ``AS`` alias when one was given)."""
        return self._columns[index - 1]

    def get_column_name(self, index: int) -> str:
        # DB-API descriptions only carry the label
        return self._columns[index - 1]

    def get_column_names(self) -> list[str]:
        return list(self._columns)


def get_column_name(metadata: ResultSetMetaData, index: int) -> str:
    """Return the label of a column, falling back to its real name.
    """
    name = metadata.get_column_label(index)
    if not name:
        name = metadata.get_column_name(index)
    return name


class ResultSet:
    """Forward-only cursor over the rows of a query.

    ``next()`` advances to the following row and reports whether one exists.
    Column values are read with 1-based indexes, like positional parameters.
    """

    def __init__(self, cursor: Any, rows: Iterator[Sequence] | None = None,
                 description: Sequence | None = None, fetch_size: int = 500) -> None:
        self._cursor = cursor
        self._rows = rows
        self._fetch_size = fetch_size
        self._buffer: list[Sequence] = []
        self._current: Sequence | None = None
        self._row_number = 0
        self._last_was_null = False
        self.closed = False
        if description is None and cursor is not None:
            description = cursor.description
        self.metadata = ResultSetMetaData(description)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence], columns: Sequence[str]) -> 'ResultSet':
        """Build an in-memory result (used for generated keys)."""
        return cls(None, iter(rows), [(name,) for name in columns])

    def __enter__(self) -> 'ResultSet':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _fetch(self) -> Sequence | None:
        if self._rows is not None:
            return next(self._rows, None)
        if not self._buffer:
            self._buffer = list(self._cursor.fetchmany(self._fetch_size))
            self._buffer.reverse()
        return self._buffer.pop() if self._buffer else None

    def next(self) -> bool:
        """Advance to the next row. Returns False once exhausted."""
        if self.closed:
            raise ValueError('ResultSet is closed')
        self._current = self._fetch()
        if self._current is None:
            return False
        self._row_number += 1
        return True

    @property
    def row_number(self) -> int:
        """1-based number of the current row, 0 before the first row."""
        return self._row_number

    def _check_row(self) -> Sequence:
        if self._current is None:
            raise ValueError('ResultSet is not positioned on a row')
        return self._current

    def get_object(self, index: int) -> Any:
        """Return the raw driver value of a column."""
        row = self._check_row()
        if index < 1 or index > len(row):
            raise IndexError(f'Column index {index} out of range 1..{len(row)}')
        if isinstance(row, dict):
            value = row[self.metadata.get_column_label(index)]
        else:
            value = row[index - 1]
        self._last_was_null = value is None
        return value

    def get_value(self, index: int, required_type: type | None = None) -> Any:
        """Return a column value read as ``required_type``."""
        return get_result_set_value(self, index, required_type)

    def get_string(self, index: int) -> str | None:
        return self.get_value(index, str)

    def get_int(self, index: int) -> int | None:
        return self.get_value(index, int)

    def was_null(self) -> bool:
        """Whether the last column read was SQL NULL."""
        return self._last_was_null

    def close(self) -> None:
        """Release the buffered rows. The cursor belongs to the statement."""
        self.closed = True
        self._buffer = []
        self._current = None


class Statement:
    """Executes plain SQL on a connection.
    """

    def __init__(self, connection: 'Connection', cursor: Any) -> None:
        self.connection = connection
        self.dbapi_cursor = cursor
        self.sql: str | None = None
        self._params: list[Any] = []
        self._generated_key: Any = None
        self.closed = False

    def __enter__(self) -> 'Statement':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @dumpsql
    def execute_query(self, sql: str) -> ResultSet:
        """Execute a query and return its rows."""
        self.sql = sql
        self.dbapi_cursor.execute(sql)
        return ResultSet(self.dbapi_cursor)

    @dumpsql
    def execute_update(self, sql: str, return_generated_keys: bool = False) -> int:
        """Execute a data-changing statement and return the affected row count."""
        self.sql = sql
        with self.connection.autocommit_scope():
            self.dbapi_cursor.execute(sql)
        self._generated_key = (self.connection.generated_key(self.dbapi_cursor, sql)
                               if return_generated_keys else None)
        return self.dbapi_cursor.rowcount

    def get_generated_keys(self) -> ResultSet:
        """Return the key generated by the last update, if any.

        The cursor is empty when the driver reported no generated id.
        """
        rows = [(self._generated_key,)] if self._generated_key else []
        return ResultSet.from_rows(rows, ['GENERATED_KEY'])

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.dbapi_cursor.close()


class PreparedStatement(Statement):
    """A parameterized statement with positional (1-based) parameters.

    The SQL is written with ``?`` placeholders; values are bound with the
    typed setters before executing.
    """

    def __init__(self, connection: 'Connection', cursor: Any, sql: str,
                 return_generated_keys: bool = False) -> None:
        super().__init__(connection, cursor)
        self.sql = sql
        self.return_generated_keys = return_generated_keys
        self.parameter_count = count_placeholders(sql)
        self._driver_sql = standardize_placeholders(sql, connection.paramstyle)
        self._batch: list[tuple] = []

    def _set(self, index: int, value: Any) -> None:
        if index < 1:
            raise IndexError(f'Parameter index must be 1-based, got {index}')
        if len(self._params) < index:
            self._params.extend([None] * (index - len(self._params)))
        self._params[index - 1] = value

    def get_parameters(self) -> tuple:
        return tuple(self._params)

    def clear_parameters(self) -> None:
        self._params = []

    def set_null(self, index: int, sql_type: int) -> None:
        self._set(index, None)

    def set_string(self, index: int, value: str) -> None:
        self._set(index, str(value))

    def set_nstring(self, index: int, value: str) -> None:
        self._set(index, str(value))

    def set_character_stream(self, index: int, reader: IO[str], length: int) -> None:
        """Bind the first ``length`` characters of a text stream."""
        self._set(index, reader.read(length))

    def set_ncharacter_stream(self, index: int, reader: IO[str], length: int) -> None:
        self._set(index, reader.read(length))

    def set_decimal(self, index: int, value: Decimal) -> None:
        self._set(index, value)

    def set_boolean(self, index: int, value: bool) -> None:
        self._set(index, bool(value))

    def set_bytes(self, index: int, value: bytes) -> None:
        self._set(index, bytes(value))

    def set_date(self, index: int, value: datetime.date,
                 tz: datetime.tzinfo | None = None) -> None:
        """Bind a date, rendering aware datetimes in ``tz`` first."""
        if isinstance(value, datetime.datetime):
            if tz is not None and value.tzinfo is not None:
                value = value.astimezone(tz)
            value = value.date()
        self._set(index, value)

    def set_time(self, index: int, value: datetime.time,
                 tz: datetime.tzinfo | None = None) -> None:
        if isinstance(value, datetime.datetime):
            if tz is not None and value.tzinfo is not None:
                value = value.astimezone(tz)
            value = value.time()
        self._set(index, value)

    def set_timestamp(self, index: int, value: datetime.datetime,
                      tz: datetime.tzinfo | None = None) -> None:
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz).replace(tzinfo=None)
        self._set(index, value)

    def set_object(self, index: int, value: Any, sql_type: int | None = None) -> None:
        """Bind a value as-is, leaving the conversion to the driver.

        Use with care: how a given Python object is sent depends entirely
        on the driver's adapters.
        """
        self._set(index, TypeConverter.convert_value(value))

    @dumpsql
    def execute_query(self) -> ResultSet:
        self.dbapi_cursor.execute(self._driver_sql, self.get_parameters())
        return ResultSet(self.dbapi_cursor)

    @dumpsql
    def execute_update(self) -> int:
        with self.connection.autocommit_scope():
            self.dbapi_cursor.execute(self._driver_sql, self.get_parameters())
        if self.return_generated_keys:
            self._generated_key = self.connection.generated_key(self.dbapi_cursor, self.sql)
        return self.dbapi_cursor.rowcount

    def add_batch(self) -> None:
        """Queue the current parameters for the next ``execute_batch``."""
        self._batch.append(self.get_parameters())
        self.clear_parameters()

    @dumpsql_many
    def execute_batch(self) -> list[int]:
        """Execute every queued parameter set with a single ``executemany``.

        Returns one entry per queued set. ``executemany`` only reports a
        total, so a single set gets that count and every set of a larger
        batch gets ``SUCCESS_NO_INFO``, as does a set whose count the
        driver does not report.
        """
        batch, self._batch = self._batch, []
        if not batch:
            logger.warning('execute_batch called with no queued parameters')
            return []
        with self.connection.autocommit_scope():
            self.dbapi_cursor.executemany(self._driver_sql, batch)
        total = self.dbapi_cursor.rowcount
        if len(batch) == 1 and total is not None and total >= 0:
            return [total]
        return [SUCCESS_NO_INFO] * len(batch)
