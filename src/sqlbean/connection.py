"""
Connection wrapper handed out by a data source.

Wraps a pooled DB-API connection and provides:
1. Statement and prepared statement creation
2. Auto-commit of successful updates, rollback of failed ones
3. Capability metadata (batch update support)
4. Reading the key generated by an INSERT
5. Returning the connection to the pool on close
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Self

from sqlbean.sql import insert_table
from sqlbean.statement import PreparedStatement, Statement

logger = logging.getLogger(__name__)

__all__ = [
    'Connection',
    'ConnectionMetadata',
]


@dataclass(frozen=True)
class ConnectionMetadata:
    """Capabilities declared for a connection."""
    supports_batch_updates: bool = True
    paramstyle: str = 'qmark'
    dialect: str | None = None


class Connection:
    """Wraps a DB-API connection checked out of a pool.

    Every successful update commits unless ``in_transaction`` is set.
    """

    def __init__(self, dbapi_connection: Any, paramstyle: str = 'qmark',
                 supports_batch_updates: bool = True, dialect: str | None = None) -> None:
        self.dbapi_connection = dbapi_connection
        self.paramstyle = paramstyle
        self.dialect = dialect
        self.metadata = ConnectionMetadata(
            supports_batch_updates=supports_batch_updates,
            paramstyle=paramstyle,
            dialect=dialect,
        )
        self.in_transaction = False
        self.closed = False
        self._rowid_alias: dict[str, bool] = {}

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def _cursor(self) -> Any:
        if self.closed:
            raise ValueError('Connection is closed')
        return self.dbapi_connection.cursor()

    def create_statement(self) -> Statement:
        """Create a statement for ad-hoc SQL."""
        return Statement(self, self._cursor())

    def prepare_statement(self, sql: str, return_generated_keys: bool = False) -> PreparedStatement:
        """Create a prepared statement for SQL with ``?`` placeholders."""
        return PreparedStatement(self, self._cursor(), sql, return_generated_keys)

    def generated_key(self, cursor: Any, sql: str | None) -> Any:
        """Return the key generated by the last statement run on ``cursor``.

        SQLite reports the implicit rowid after every INSERT, so there the
        id only counts as generated when the target table aliases the rowid
        with an INTEGER PRIMARY KEY column. Returns None when there is no key.
        """
        key = cursor.lastrowid
        if not key or self.dialect != 'sqlite':
            return key or None
        table = insert_table(sql)
        if table is None or not self.has_rowid_alias(table):
            return None
        return key

    def has_rowid_alias(self, table: str) -> bool:
        """Check whether a SQLite table has an INTEGER PRIMARY KEY column.
        """
        if table not in self._rowid_alias:
            schema, _, name = table.rpartition('.')
            pragma = f'PRAGMA {schema}.table_info' if schema else 'PRAGMA table_info'
            name = name.replace('"', '""')
            cursor = self._cursor()
            try:
                cursor.execute(f'{pragma}("{name}")')
                # (cid, name, type, notnull, dflt_value, pk)
                keys = [row for row in cursor.fetchall() if row[5]]
            finally:
                cursor.close()
            self._rowid_alias[table] = (
                len(keys) == 1 and str(keys[0][2]).upper() == 'INTEGER')
            logger.debug(f'Table {table} rowid alias: {self._rowid_alias[table]}')
        return self._rowid_alias[table]

    def commit(self) -> None:
        self.dbapi_connection.commit()

    def rollback(self) -> None:
        self.dbapi_connection.rollback()

    @contextmanager
    def autocommit_scope(self) -> Iterator[None]:
        """Commit after the block, or roll back when it raises."""
        try:
            yield
        except Exception:
            if not self.in_transaction:
                try:
                    self.rollback()
                except Exception as e:
                    logger.warning(f'Rollback failed: {e}')
            raise
        if not self.in_transaction:
            self.commit()

    def close(self) -> None:
        """Return the connection to the pool."""
        if self.closed:
            return
        self.closed = True
        self.dbapi_connection.close()
        logger.debug('Connection returned to pool')
