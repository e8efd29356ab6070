"""
Synchronous data access facade.

Every operation checks a connection out of the data source, runs one
statement on it and hands the connection back, whatever the outcome.
Driver errors are wrapped into DataAccessError carrying the SQL text;
library errors (type mismatch, unsupported operation, incorrect result
size) propagate unchanged.

SQL is written with ``?`` placeholders::

    db = Database(data_source)
    db.update_args('INSERT INTO users VALUES(?, ?, ?)', [3, 'X', 10],
                   [SqlType.INTEGER, SqlType.VARCHAR, SqlType.INTEGER])
    users = db.query_for_list('SELECT * FROM users WHERE score > ?',
                              BeanRowMapper(User), args=[5])
"""
import logging
from collections.abc import Callable, Sequence
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from sqlbean.binding import BatchSetter, DefaultBatchSetter, DefaultSetter
from sqlbean.binding import DefaultSetterUnknownType, ParametrizedBatchSetter
from sqlbean.binding import PreparedStatementSetter
from sqlbean.connection import Connection
from sqlbean.datasource import DataSource, close_connection, close_result_set
from sqlbean.datasource import close_statement, get_connection
from sqlbean.exceptions import DataAccessError, DriverError
from sqlbean.exceptions import UnsupportedOperationError
from sqlbean.extract import DefaultExtractor, ResultSetExtractor, RowMapper
from sqlbean.extract import nullable_empty_result, nullable_single_result
from sqlbean.sql import get_sql
from sqlbean.statement import PreparedStatement, Statement

logger = logging.getLogger(__name__)

__all__ = [
    'Database',
    'DefaultCreator',
    'PreparedStatementCreator',
    'StatementFunction',
    'PreparedStatementFunction',
    'QueryStatementFunction',
    'UpdateStatementFunction',
    'SimpleUpdateStatementFunction',
]

T = TypeVar('T')
T_co = TypeVar('T_co', covariant=True)


@runtime_checkable
class StatementFunction(Protocol[T_co]):
    """Does work with a plain Statement."""

    def __call__(self, statement: Statement) -> T_co:
        ...


@runtime_checkable
class PreparedStatementFunction(Protocol[T_co]):
    """Does work with a PreparedStatement."""

    def __call__(self, ps: PreparedStatement) -> T_co:
        ...


@runtime_checkable
class PreparedStatementCreator(Protocol):
    """Creates a PreparedStatement on the given connection."""

    def __call__(self, connection: Connection) -> PreparedStatement:
        ...


def _first_generated_key(statement: Statement) -> int:
    rs = None
    try:
        rs = statement.get_generated_keys()
        return (rs.get_int(1) or 0) if rs.next() else 0
    finally:
        close_result_set(rs)


class DefaultCreator:
    """Prepares a fixed SQL statement."""

    def __init__(self, sql: str, return_generated_keys: bool = False) -> None:
        if sql is None:
            raise TypeError('Sql statement cannot be None.')
        if not sql:
            raise ValueError('Sql statement cannot be empty.')
        self.sql = sql
        self.return_generated_keys = return_generated_keys

    def __call__(self, connection: Connection) -> PreparedStatement:
        if connection is None:
            raise TypeError('Connection cannot be None.')
        return connection.prepare_statement(self.sql, self.return_generated_keys)


class QueryStatementFunction(Generic[T]):
    """Runs a query and hands the cursor to an extractor."""

    def __init__(self, extractor: ResultSetExtractor[T], sql: str | None) -> None:
        if extractor is None:
            raise TypeError('ResultSetExtractor cannot be None.')
        self.extractor = extractor
        self.sql = sql

    def __call__(self, statement: Statement) -> T | None:
        rs = None
        try:
            rs = statement.execute_query(self.sql)
            return self.extractor(rs)
        finally:
            close_result_set(rs)


class UpdateStatementFunction:
    """Runs an update, returning the row count or the first generated key.

    The generated key is 0 when the statement produced none.
    """

    def __init__(self, sql: str | None, return_generated_keys: bool = False) -> None:
        self.sql = sql
        self.return_generated_keys = return_generated_keys

    def __call__(self, statement: Statement) -> int:
        if not self.return_generated_keys:
            return statement.execute_update(self.sql)
        statement.execute_update(self.sql, return_generated_keys=True)
        return _first_generated_key(statement)


class SimpleUpdateStatementFunction:
    """Runs an update and returns the row count."""

    def __init__(self, sql: str | None) -> None:
        self.sql = sql

    def __call__(self, statement: Statement) -> int:
        return statement.execute_update(self.sql)


def _require_batch_support(ps: PreparedStatement) -> None:
    if not ps.connection.metadata.supports_batch_updates:
        raise UnsupportedOperationError(
            "This driver doesn't support batch updates. Batch operations remain "
            'unusable until a driver that supports them is configured.')


def _or_else(result: T | None, supplier: Callable[[], T] | None) -> T | None:
    if result is not None:
        return result
    if supplier is None:
        raise TypeError('The supplier cannot be None.')
    return supplier()


def _to_extractor(extractor: ResultSetExtractor[T] | None,
                  mapper: RowMapper[T] | None) -> ResultSetExtractor:
    if (extractor is None) == (mapper is None):
        raise TypeError('Exactly one of extractor or mapper must be given.')
    return extractor if extractor is not None else DefaultExtractor(mapper)


def _setter_for(args: Sequence[Any] | None,
                sql_types: Sequence[int] | None) -> PreparedStatementSetter:
    if sql_types is None:
        return DefaultSetterUnknownType(args)
    return DefaultSetter(args, sql_types)


class Database:
    """Blocking data operations over a pooled data source.

    When the data source hands out no connection the operation logs a
    warning and returns None (-1 for updates) instead of raising.
    """

    def __init__(self, data_source: DataSource) -> None:
        if data_source is None:
            raise TypeError('The DataSource cannot be None.')
        self.data_source = data_source

    def __repr__(self) -> str:
        return f'Database({self.data_source!r})'

    def _acquire(self) -> Connection | None:
        connection = get_connection(self.data_source)
        if connection is None:
            logger.warning('Cannot retrieve a connection.')
        return connection

    def execute(self, callback: StatementFunction[T]) -> T | None:
        """Run a callback against a new Statement.

        Raises
            DataAccessError: If the driver fails
        """
        if callback is None:
            raise TypeError('StatementFunction cannot be None.')
        connection = self._acquire()
        if connection is None:
            return None

        statement = None
        try:
            statement = connection.create_statement()
            return callback(statement)
        except DriverError as e:
            raise DataAccessError('Statement callback', get_sql(callback), e) from e
        finally:
            close_statement(statement)
            close_connection(connection)

    def execute_prepared(self, creator: PreparedStatementCreator,
                         callback: PreparedStatementFunction[T]) -> T | None:
        """Run a callback against the PreparedStatement built by ``creator``.

        Raises
            DataAccessError: If the driver fails
        """
        if creator is None:
            raise TypeError('PreparedStatementCreator cannot be None.')
        if callback is None:
            raise TypeError('PreparedStatementFunction cannot be None.')
        connection = self._acquire()
        if connection is None:
            return None

        ps = None
        try:
            ps = creator(connection)
            return callback(ps)
        except DriverError as e:
            raise DataAccessError('PreparedStatement callback', get_sql(creator), e) from e
        finally:
            close_statement(ps)
            close_connection(connection)

    def execute_with(self, sql: str, callback: PreparedStatementFunction[T]) -> T | None:
        return self.execute_prepared(DefaultCreator(sql), callback)

    # Updates

    def update(self, sql: str, return_generated_keys: bool = False) -> int:
        """Run a plain update.

        Returns the affected row count, or the first generated key (0 when
        there is none) when ``return_generated_keys`` is set.
        """
        if sql is None:
            raise TypeError('Sql statement cannot be None.')
        if return_generated_keys:
            return self.update_with(sql, None, return_generated_keys=True)
        result = self.execute(SimpleUpdateStatementFunction(sql))
        return -1 if result is None else result

    def update_prepared(self, creator: PreparedStatementCreator,
                        setter: PreparedStatementSetter | None = None,
                        return_generated_keys: bool = False) -> int:
        """Bind parameters with ``setter`` and run the prepared update."""
        def function(ps: PreparedStatement) -> int:
            if setter is not None:
                setter(ps)
            if not return_generated_keys:
                return ps.execute_update()
            ps.execute_update()
            return _first_generated_key(ps)

        result = self.execute_prepared(creator, function)
        return -1 if result is None else result

    def update_with(self, sql: str, setter: PreparedStatementSetter | None = None,
                    return_generated_keys: bool = False) -> int:
        return self.update_prepared(DefaultCreator(sql, return_generated_keys), setter,
                                    return_generated_keys)

    def update_args(self, sql: str, params: Sequence[Any] | None,
                    sql_types: Sequence[int] | None = None,
                    return_generated_keys: bool = False) -> int:
        """Run an update binding ``params`` with their declared SqlTypes.

        Without ``sql_types`` the values are bound as-is and the driver
        picks their types.
        """
        return self.update_with(sql, _setter_for(params, sql_types), return_generated_keys)

    # Batches

    def batch_update(self, sql: str, batch_setter: BatchSetter) -> list[int] | None:
        """Run ``sql`` once per index of ``batch_setter`` as a single batch.

        Returns one count per entry, see ``PreparedStatement.execute_batch``.

        Raises
            UnsupportedOperationError: If the connection cannot batch
        """
        if sql is None:
            raise TypeError('Sql cannot be None.')
        if batch_setter is None:
            raise TypeError('BatchSetter cannot be None.')

        def function(ps: PreparedStatement) -> list[int]:
            _require_batch_support(ps)
            for i in range(batch_setter.batch_size):
                batch_setter.set_values(ps, i)
                ps.add_batch()
            return ps.execute_batch()

        return self.execute_with(sql, function)

    def batch_update_args(self, sql: str, batch_args: Sequence[Sequence[Any]] | None,
                          sql_types: Sequence[int] | None = None) -> list[int] | None:
        """Run ``sql`` once per parameter list. Nothing runs for no arguments."""
        if sql is None:
            raise TypeError('Sql cannot be None.')
        if not batch_args:
            return None
        return self.batch_update(sql, DefaultBatchSetter(batch_args, sql_types))

    def batch_update_items(self, sql: str, items: Sequence[T] | None,
                           setter: ParametrizedBatchSetter[T]) -> list[int] | None:
        """Run ``sql`` once per item, binding each with ``setter``."""
        if sql is None:
            raise TypeError('Sql cannot be None.')
        if not sql:
            raise ValueError('Sql cannot be empty.')
        if setter is None:
            raise TypeError('ParametrizedBatchSetter cannot be None.')
        if not items:
            return None

        def function(ps: PreparedStatement) -> list[int]:
            _require_batch_support(ps)
            for item in items:
                setter(ps, item)
                ps.add_batch()
            return ps.execute_batch()

        return self.execute_with(sql, function)

    # Queries

    def query(self, sql: str, extractor: ResultSetExtractor[T]) -> T | None:
        """Run a plain query and extract its result."""
        return self.execute(QueryStatementFunction(extractor, sql))

    def query_prepared(self, creator: PreparedStatementCreator,
                       setter: PreparedStatementSetter | None = None,
                       extractor: ResultSetExtractor[T] | None = None,
                       mapper: RowMapper[T] | None = None) -> Any:
        """Run a prepared query.

        Pass either an ``extractor`` for the whole result or a row
        ``mapper``, whose rows are collected into a list.
        """
        extractor = _to_extractor(extractor, mapper)

        def function(ps: PreparedStatement) -> Any:
            rs = None
            try:
                if setter is not None:
                    setter(ps)
                rs = ps.execute_query()
                return extractor(rs)
            finally:
                close_result_set(rs)

        return self.execute_prepared(creator, function)

    def query_with(self, sql: str, setter: PreparedStatementSetter | None = None,
                   extractor: ResultSetExtractor[T] | None = None,
                   mapper: RowMapper[T] | None = None) -> Any:
        return self.query_prepared(DefaultCreator(sql), setter, extractor, mapper)

    def query_args(self, sql: str, args: Sequence[Any] | None,
                   extractor: ResultSetExtractor[T],
                   sql_types: Sequence[int] | None = None) -> T | None:
        """Run a query binding ``args``, typed by ``sql_types`` when given."""
        if extractor is None:
            raise TypeError('ResultSetExtractor cannot be None.')
        return self.query_with(sql, _setter_for(args, sql_types), extractor)

    def _query(self, sql: str, extractor: ResultSetExtractor[T],
               args: Sequence[Any] | None, sql_types: Sequence[int] | None) -> T | None:
        if args is None and sql_types is None:
            return self.query(sql, extractor)
        return self.query_args(sql, args, extractor, sql_types)

    def query_or_else_get(self, sql: str, extractor: ResultSetExtractor[T],
                          supplier: Callable[[], T], args: Sequence[Any] | None = None,
                          sql_types: Sequence[int] | None = None) -> T | None:
        """Like ``query``, returning ``supplier()`` when the result is None."""
        return _or_else(self._query(sql, extractor, args, sql_types), supplier)

    def query_for_list(self, sql: str, mapper: RowMapper[T],
                       args: Sequence[Any] | None = None,
                       sql_types: Sequence[int] | None = None) -> list[T] | None:
        """Map every row of the result."""
        return self._query(sql, DefaultExtractor(mapper), args, sql_types)

    def query_for_list_or_else_get(self, sql: str, mapper: RowMapper[T],
                                   supplier: Callable[[], list[T]],
                                   args: Sequence[Any] | None = None,
                                   sql_types: Sequence[int] | None = None) -> list[T] | None:
        """Like ``query_for_list``, returning ``supplier()`` for no rows."""
        results = self.query_for_list(sql, mapper, args, sql_types)
        return _or_else(results or None, supplier)

    def query_for_object(self, sql: str, mapper: RowMapper[T],
                         args: Sequence[Any] | None = None,
                         sql_types: Sequence[int] | None = None) -> T | None:
        """Map the single row of the result.

        Raises
            IncorrectResultSizeError: If the query returns zero or more
                than one row
        """
        return nullable_single_result(self.query_for_list(sql, mapper, args, sql_types))

    def query_for_object_or_else_get(self, sql: str, mapper: RowMapper[T],
                                     supplier: Callable[[], T],
                                     args: Sequence[Any] | None = None,
                                     sql_types: Sequence[int] | None = None) -> T | None:
        """Map the single row of the result, or return ``supplier()`` for none.

        Raises
            IncorrectResultSizeError: If the query returns more than one row
        """
        result = nullable_empty_result(self.query_for_list(sql, mapper, args, sql_types))
        return _or_else(result, supplier)
