"""
Convenience layer over pooled DB-API connections.

Entry points create a facade from Credentials or a DataSourceFactory:

- new_database(credentials): blocking Database
- new_async_database(credentials, executor): AsyncDatabase returning Futures
- close_pool(db): shut the pool down

Rows are mapped with row mappers (plain functions, BeanRowMapper for
classes) and parameters are bound with typed setters (DefaultSetter with
SqlType tags).
"""
__version__ = '0.1.0'

import logging
from concurrent.futures import Executor

from sqlbean.async_database import AsyncDatabase
from sqlbean.bean import BeanRowMapper, MapWith, Name, Skip, StringToUUID
from sqlbean.binding import DefaultBatchSetter, DefaultSetter
from sqlbean.binding import DefaultSetterUnknownType, set_value
from sqlbean.connection import Connection
from sqlbean.credentials import Credentials, CredentialsBuilder
from sqlbean.database import Database, DefaultCreator
from sqlbean.datasource import DataSource, DataSourceFactory, EngineDataSource
from sqlbean.datasource import PoolFactory, PoolSettings, close_pool
from sqlbean.datasource import new_data_source
from sqlbean.exceptions import BeanInstantiationError, ConnectionRetrieveError
from sqlbean.exceptions import ConversionError, DataAccessError, DatabaseError
from sqlbean.exceptions import DataSourceInitError, IncorrectResultSizeError
from sqlbean.exceptions import TypeMismatchError, UnsupportedOperationError
from sqlbean.extract import ColumnMapRowMapper, DataFrameExtractor
from sqlbean.extract import DefaultExtractor, SingleColumnRowMapper
from sqlbean.statement import SUCCESS_NO_INFO, PreparedStatement, ResultSet, Statement
from sqlbean.types import SqlType

logger = logging.getLogger(__name__)


def new_database(source: Credentials | DataSourceFactory) -> Database:
    """Create a Database over a new pooled data source.

    Raises
        DataSourceInitError: If the data source cannot be created
    """
    if source is None:
        raise TypeError('The credentials or DataSourceFactory cannot be None.')
    if isinstance(source, Credentials):
        return Database(new_data_source(source))

    try:
        data_source = source.new_data_source()
    except Exception as e:
        raise DataSourceInitError(f'Cannot create the data source: {e}') from e
    logger.debug(f'Created data source {data_source!r}')
    return Database(data_source)


def new_async_database(source: Credentials | DataSourceFactory,
                       executor: Executor) -> AsyncDatabase:
    """Create an AsyncDatabase running its operations on ``executor``.

    Raises
        DataSourceInitError: If the data source cannot be created
    """
    if executor is None:
        raise TypeError('The executor cannot be None.')
    return AsyncDatabase(new_database(source), executor)


__all__ = [
    'AsyncDatabase',
    'BeanInstantiationError',
    'BeanRowMapper',
    'ColumnMapRowMapper',
    'Connection',
    'ConnectionRetrieveError',
    'ConversionError',
    'Credentials',
    'CredentialsBuilder',
    'DataAccessError',
    'DataFrameExtractor',
    'DataSource',
    'DataSourceFactory',
    'DataSourceInitError',
    'Database',
    'DatabaseError',
    'DefaultBatchSetter',
    'DefaultCreator',
    'DefaultExtractor',
    'DefaultSetter',
    'DefaultSetterUnknownType',
    'EngineDataSource',
    'IncorrectResultSizeError',
    'MapWith',
    'Name',
    'PoolFactory',
    'PoolSettings',
    'PreparedStatement',
    'ResultSet',
    'SUCCESS_NO_INFO',
    'SingleColumnRowMapper',
    'Skip',
    'SqlType',
    'Statement',
    'StringToUUID',
    'TypeMismatchError',
    'UnsupportedOperationError',
    'close_pool',
    'new_async_database',
    'new_data_source',
    'new_database',
    'set_value',
]
