"""
Asynchronous data access facade.

Every operation of Database is submitted to a caller-supplied
``concurrent.futures.Executor`` and returns the resulting Future; nothing
runs on the calling thread. Failures are only visible through the Future.
"""
import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future
from typing import Any, TypeVar

from sqlbean.binding import BatchSetter, ParametrizedBatchSetter
from sqlbean.binding import PreparedStatementSetter
from sqlbean.database import Database, PreparedStatementCreator
from sqlbean.database import PreparedStatementFunction, StatementFunction
from sqlbean.datasource import DataSource
from sqlbean.extract import ResultSetExtractor, RowMapper

logger = logging.getLogger(__name__)

__all__ = ['AsyncDatabase']

T = TypeVar('T')


class AsyncDatabase:
    """Runs Database operations on an executor.

    ``operations`` is a Database (or any object with the same methods), or
    a DataSource wrapped into a new Database.
    """

    def __init__(self, operations: Database | DataSource, executor: Executor) -> None:
        if operations is None:
            raise TypeError('The operations cannot be None.')
        if executor is None:
            raise TypeError('The executor cannot be None.')
        if not isinstance(operations, Database) and isinstance(operations, DataSource):
            operations = Database(operations)
        self.operations = operations
        self.executor = executor

    @property
    def database(self) -> Database | None:
        """The wrapped Database, or None for other operation objects."""
        return self.operations if isinstance(self.operations, Database) else None

    @property
    def data_source(self) -> DataSource | None:
        return getattr(self.operations, 'data_source', None)

    def _submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future:
        logger.debug(f'Submitting {getattr(fn, "__name__", fn)} to {type(self.executor).__name__}')
        return self.executor.submit(fn, *args, **kwargs)

    def execute(self, callback: StatementFunction[T]) -> Future:
        return self._submit(self.operations.execute, callback)

    def execute_prepared(self, creator: PreparedStatementCreator,
                         callback: PreparedStatementFunction[T]) -> Future:
        return self._submit(self.operations.execute_prepared, creator, callback)

    def execute_with(self, sql: str, callback: PreparedStatementFunction[T]) -> Future:
        return self._submit(self.operations.execute_with, sql, callback)

    def update(self, sql: str, return_generated_keys: bool = False) -> Future:
        return self._submit(self.operations.update, sql, return_generated_keys)

    def update_prepared(self, creator: PreparedStatementCreator,
                        setter: PreparedStatementSetter | None = None,
                        return_generated_keys: bool = False) -> Future:
        return self._submit(self.operations.update_prepared, creator, setter,
                            return_generated_keys)

    def update_with(self, sql: str, setter: PreparedStatementSetter | None = None,
                    return_generated_keys: bool = False) -> Future:
        return self._submit(self.operations.update_with, sql, setter, return_generated_keys)

    def update_args(self, sql: str, params: Sequence[Any] | None,
                    sql_types: Sequence[int] | None = None,
                    return_generated_keys: bool = False) -> Future:
        return self._submit(self.operations.update_args, sql, params, sql_types,
                            return_generated_keys)

    def batch_update(self, sql: str, batch_setter: BatchSetter) -> Future:
        return self._submit(self.operations.batch_update, sql, batch_setter)

    def batch_update_args(self, sql: str, batch_args: Sequence[Sequence[Any]] | None,
                          sql_types: Sequence[int] | None = None) -> Future:
        return self._submit(self.operations.batch_update_args, sql, batch_args, sql_types)

    def batch_update_items(self, sql: str, items: Sequence[T] | None,
                           setter: ParametrizedBatchSetter[T]) -> Future:
        return self._submit(self.operations.batch_update_items, sql, items, setter)

    def query(self, sql: str, extractor: ResultSetExtractor[T]) -> Future:
        return self._submit(self.operations.query, sql, extractor)

    def query_prepared(self, creator: PreparedStatementCreator,
                       setter: PreparedStatementSetter | None = None,
                       extractor: ResultSetExtractor[T] | None = None,
                       mapper: RowMapper[T] | None = None) -> Future:
        return self._submit(self.operations.query_prepared, creator, setter, extractor, mapper)

    def query_with(self, sql: str, setter: PreparedStatementSetter | None = None,
                   extractor: ResultSetExtractor[T] | None = None,
                   mapper: RowMapper[T] | None = None) -> Future:
        return self._submit(self.operations.query_with, sql, setter, extractor, mapper)

    def query_args(self, sql: str, args: Sequence[Any] | None,
                   extractor: ResultSetExtractor[T],
                   sql_types: Sequence[int] | None = None) -> Future:
        return self._submit(self.operations.query_args, sql, args, extractor, sql_types)

    def query_or_else_get(self, sql: str, extractor: ResultSetExtractor[T],
                          supplier: Callable[[], T], args: Sequence[Any] | None = None,
                          sql_types: Sequence[int] | None = None) -> Future:
        return self._submit(self.operations.query_or_else_get, sql, extractor, supplier,
                            args, sql_types)

    def query_for_list(self, sql: str, mapper: RowMapper[T],
                       args: Sequence[Any] | None = None,
                       sql_types: Sequence[int] | None = None) -> Future:
        return self._submit(self.operations.query_for_list, sql, mapper, args, sql_types)

    def query_for_list_or_else_get(self, sql: str, mapper: RowMapper[T],
                                   supplier: Callable[[], list[T]],
                                   args: Sequence[Any] | None = None,
                                   sql_types: Sequence[int] | None = None) -> Future:
        return self._submit(self.operations.query_for_list_or_else_get, sql, mapper,
                            supplier, args, sql_types)

    def query_for_object(self, sql: str, mapper: RowMapper[T],
                         args: Sequence[Any] | None = None,
                         sql_types: Sequence[int] | None = None) -> Future:
        return self._submit(self.operations.query_for_object, sql, mapper, args, sql_types)

    def query_for_object_or_else_get(self, sql: str, mapper: RowMapper[T],
                                     supplier: Callable[[], T],
                                     args: Sequence[Any] | None = None,
                                     sql_types: Sequence[int] | None = None) -> Future:
        return self._submit(self.operations.query_for_object_or_else_get, sql, mapper,
                            supplier, args, sql_types)
