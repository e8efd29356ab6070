"""
Pooled data sources backed by SQLAlchemy engines.

This module provides:
1. `PoolFactory` for lazily creating a pooled data source from Credentials
2. `EngineDataSource`, which checks DB-API connections out of an engine pool
3. Helpers for acquiring and releasing connections, statements and pools
"""
import logging
import os
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.engine import Engine

from sqlbean.connection import Connection
from sqlbean.credentials import Credentials
from sqlbean.exceptions import ConnectionRetrieveError, DataSourceInitError
from sqlbean.exceptions import DriverError

logger = logging.getLogger(__name__)

__all__ = [
    'DataSource',
    'DataSourceFactory',
    'EngineDataSource',
    'PoolFactory',
    'PoolSettings',
    'DRIVERS',
    'new_data_source',
    'create_url',
    'get_connection',
    'close_connection',
    'close_statement',
    'close_result_set',
    'close_pool',
]

DRIVERS = {
    'mysql': 'mysql+pymysql',
    'postgresql': 'postgresql+psycopg',
}

MAXIMUM_POOL_SIZE = ((os.cpu_count() or 1) * 2) + 1
MINIMUM_IDLE = min(MAXIMUM_POOL_SIZE, 10)


@dataclass(frozen=True)
class PoolSettings:
    """Pool and driver tuning applied to every data source.

    Times are in seconds.
    """
    maximum_pool_size: int = MAXIMUM_POOL_SIZE
    minimum_idle: int = MINIMUM_IDLE
    max_lifetime: int = 30 * 60
    connection_timeout: int = 10
    leak_detection_threshold: float = 10
    socket_timeout: int = 30
    statement_cache_size: int = 250
    server_side_prepare: bool = True
    charset: str = 'utf8mb4'
    extra_connect_args: dict[str, Any] = field(default_factory=dict)

    def connect_args(self, drivername: str) -> dict[str, Any]:
        """Driver keyword arguments for ``create_engine(connect_args=...)``."""
        if drivername == 'mysql':
            # PyMySQL rewrites executemany INSERTs into multi-row statements itself
            args = {
                'charset': self.charset,
                'connect_timeout': self.connection_timeout,
                'read_timeout': self.socket_timeout,
                'write_timeout': self.socket_timeout,
            }
        elif drivername == 'postgresql':
            args = {
                'connect_timeout': self.connection_timeout,
                'prepare_threshold': 0 if self.server_side_prepare else None,
            }
        else:
            args = {}
        args.update(self.extra_connect_args)
        return args

    def engine_kwargs(self) -> dict[str, Any]:
        """Pool keyword arguments for ``create_engine``."""
        return {
            'pool_size': self.minimum_idle,
            'max_overflow': max(self.maximum_pool_size - self.minimum_idle, 0),
            'pool_recycle': self.max_lifetime,
            'pool_timeout': self.connection_timeout,
            'pool_pre_ping': True,
            'query_cache_size': self.statement_cache_size,
        }


@runtime_checkable
class DataSource(Protocol):
    """Source of pooled connections."""

    def get_connection(self) -> Connection | None:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class DataSourceFactory(Protocol):
    """Creates a data source on demand."""

    def new_data_source(self) -> DataSource:
        ...


class EngineDataSource:
    """Data source that hands out raw DB-API connections from an engine pool.

    Each call to ``get_connection`` checks out a distinct pooled connection;
    closing the returned Connection checks it back in.
    """

    def __init__(self, engine: Engine, supports_batch_updates: bool = True,
                 name: str | None = None) -> None:
        self.engine = engine
        self.name = name or engine.url.render_as_string(hide_password=True)
        self.supports_batch_updates = supports_batch_updates
        dbapi = getattr(engine.dialect, 'dbapi', None)
        self.paramstyle = getattr(dbapi, 'paramstyle', None) or engine.dialect.paramstyle
        self.dialect = engine.dialect.name

    def get_connection(self) -> Connection:
        raw = self.engine.raw_connection()
        return Connection(raw, paramstyle=self.paramstyle,
                          supports_batch_updates=self.supports_batch_updates,
                          dialect=self.dialect)

    def close(self) -> None:
        """Shut down the pool."""
        self.engine.dispose()
        logger.debug(f'Pool {self.name} disposed')

    def __repr__(self) -> str:
        return f'EngineDataSource({self.name!r})'


def create_url(credentials: Credentials, drivername: str = 'mysql',
               url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """Build the ``<scheme>://<host>:<port>/<schema>`` URL for Credentials.
    """
    if drivername not in DRIVERS:
        raise ValueError(f'Unsupported database type: {drivername}')
    return url_creator(
        drivername=DRIVERS[drivername],
        username=credentials.username,
        password=credentials.password,
        host=credentials.hostname,
        port=credentials.port,
        database=credentials.schema,
    )


def install_leak_detection(engine: Engine, threshold: float,
                           clock: Callable[[], float] = time.monotonic) -> None:
    """Warn when a connection stays checked out longer than ``threshold``.

    A connection is reported when it is checked back in too late, or, if
    it is never returned, by the next checkout or checkin on the same
    pool that finds it overdue. Each checkout is reported at most once.
    """
    if not threshold or threshold <= 0:
        return

    checked_out: dict[int, float] = {}
    reported: set[int] = set()
    lock = threading.Lock()

    def _report_overdue(now: float) -> None:
        for key, started in checked_out.items():
            held = now - started
            if key not in reported and held > threshold:
                reported.add(key)
                logger.warning(f'Connection checked out {held:.1f}s ago and not returned '
                               f'(threshold {threshold}s), possible connection leak')

    @event.listens_for(engine, 'checkout')
    def _on_checkout(dbapi_connection, connection_record, connection_proxy):
        now = clock()
        with lock:
            checked_out[id(connection_record)] = now
            reported.discard(id(connection_record))
            _report_overdue(now)

    @event.listens_for(engine, 'checkin')
    def _on_checkin(dbapi_connection, connection_record):
        now = clock()
        key = id(connection_record)
        with lock:
            started = checked_out.pop(key, None)
            unreported = key not in reported
            reported.discard(key)
            _report_overdue(now)
        if started is None or not unreported:
            return
        held = now - started
        if held > threshold:
            logger.warning(f'Connection held for {held:.1f}s (threshold {threshold}s), '
                           'possible connection leak')


class PoolFactory:
    """Lazily creates a pooled EngineDataSource from Credentials.

    Nothing is created until ``new_data_source()`` is called.
    """

    def __init__(self, credentials: Credentials | None = None,
                 settings: PoolSettings | None = None,
                 drivername: str = 'mysql',
                 engine_factory: Callable[..., Engine] = sa.create_engine,
                 **engine_kwargs: Any) -> None:
        self.credentials = credentials
        self.settings = settings or PoolSettings()
        self.drivername = drivername
        self.engine_factory = engine_factory
        self.engine_kwargs = engine_kwargs
        self.data_source: EngineDataSource | None = None

    def set_credentials(self, credentials: Credentials | None) -> 'PoolFactory':
        self.credentials = credentials
        return self

    def new_data_source(self) -> EngineDataSource:
        """Create the engine and its pool.

        Raises
            DataSourceInitError: If the engine cannot be created
        """
        if self.credentials is None:
            raise DataSourceInitError('Credentials are not set.')

        try:
            url = create_url(self.credentials, self.drivername)
            kwargs = self.settings.engine_kwargs()
            kwargs['connect_args'] = self.settings.connect_args(self.drivername)
            kwargs['pool_logging_name'] = self.credentials.pool_name
            kwargs.update(self.engine_kwargs)
            engine = self.engine_factory(url, **kwargs)
        except Exception as e:
            raise DataSourceInitError(
                f'Cannot create the data source {self.credentials.pool_name}: {e}') from e

        install_leak_detection(engine, self.settings.leak_detection_threshold)
        self.data_source = EngineDataSource(engine, name=self.credentials.pool_name)
        logger.debug(f'Created pool {self.credentials.pool_name} '
                     f'(max {self.settings.maximum_pool_size} connections)')
        return self.data_source


def new_data_source(credentials: Credentials, **kwargs: Any) -> EngineDataSource:
    """Create a pooled data source with the default PoolFactory.
    """
    if credentials is None:
        raise TypeError('The credentials cannot be None.')
    factory = PoolFactory(credentials, **kwargs)
    try:
        return factory.new_data_source()
    except DataSourceInitError:
        raise
    except Exception as e:
        raise DataSourceInitError(f'Cannot create the data source: {e}') from e


def get_connection(data_source: DataSource) -> Connection | None:
    """Get a connection from a data source.

    Raises
        ConnectionRetrieveError: If the pool fails to hand out a connection
    """
    if data_source is None:
        raise TypeError('The DataSource cannot be None.')
    try:
        return data_source.get_connection()
    except (*DriverError, sa.exc.TimeoutError) as e:
        raise ConnectionRetrieveError(
            f'Cannot retrieve connection from the given DataSource: {e}') from e


def close_connection(connection: Connection | None) -> None:
    if connection is None:
        return
    try:
        connection.close()
    except Exception as e:
        logger.warning(f'There was an error while trying to close the connection: {e}')


def close_statement(statement: Any) -> None:
    if statement is None:
        return
    try:
        statement.close()
    except Exception as e:
        logger.warning(f'There was an error while trying to close the statement: {e}')


def close_result_set(result_set: Any) -> None:
    if result_set is None:
        return
    try:
        result_set.close()
    except Exception as e:
        logger.warning(f'There was an error while trying to close the result set: {e}')


def close_pool(obj: Any) -> None:
    """Shut down the pool behind a data source, Database or AsyncDatabase.
    """
    if obj is None:
        return

    data_source = obj if isinstance(obj, DataSource) else getattr(obj, 'data_source', None)
    if data_source is None:
        logger.warning(f'No data source to close for {type(obj).__name__}')
        return
    if not isinstance(data_source, DataSource):
        raise TypeError(f'{type(data_source).__name__} cannot be closed as a pool.')

    try:
        data_source.close()
    except Exception as e:
        logger.warning(f'There was an error while closing the connection pool: {e}')
