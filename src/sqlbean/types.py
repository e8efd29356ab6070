"""
Type handling for statement parameters and result columns.

This module provides:
- SqlType: numeric type tags for bound parameters
- TypeConverter: normalize NumPy/pandas values before they reach the driver
- get_result_set_value: typed column getters used by the row mappers
"""
import datetime
import enum
import logging
import math
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import TYPE_CHECKING, Any

import dateutil.parser
import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from sqlbean.statement import ResultSet

logger = logging.getLogger(__name__)

__all__ = [
    'SqlType',
    'TypeConverter',
    'get_result_set_value',
    'get_column_value',
    'to_int32',
]

INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1


class SqlType(IntEnum):
    """Type tags for bound parameters, using the JDBC numeric codes.
    """
    BIT = -7
    TINYINT = -6
    SMALLINT = 5
    INTEGER = 4
    BIGINT = -5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    NUMERIC = 2
    DECIMAL = 3
    CHAR = 1
    VARCHAR = 12
    LONGVARCHAR = -1
    NCHAR = -15
    NVARCHAR = -9
    LONGNVARCHAR = -16
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    BINARY = -2
    VARBINARY = -3
    LONGVARBINARY = -4
    NULL = 0
    OTHER = 1111
    BLOB = 2004
    CLOB = 2005
    NCLOB = 2011
    BOOLEAN = 16
    TIME_WITH_TIMEZONE = 2013
    TIMESTAMP_WITH_TIMEZONE = 2014

    @classmethod
    def coerce(cls, tag: 'int | SqlType | None') -> 'int | SqlType | None':
        """Return the enum member for a known code, the raw int otherwise.
        """
        if tag is None or isinstance(tag, cls):
            return tag
        try:
            return cls(tag)
        except ValueError:
            return tag


class TypeConverter:
    """Normalize NumPy and pandas values to plain Python objects.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a driver-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, type(pd.NaT)):
            return None

        if isinstance(value, np.floating) and np.isnan(value):
            return None

        if isinstance(value, np.datetime64):
            if np.isnat(value):
                return None
            return pd.Timestamp(value).to_pydatetime()

        if isinstance(value, (np.bool_, np.integer, np.floating)):
            return value.item()

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of parameters for database operations."""
        if params is None:
            return None

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


def to_int32(value: Any) -> int:
    """Narrow a number to a 32-bit int, refusing values out of range.
    """
    number = int(value)
    if number < INT32_MIN or number > INT32_MAX:
        raise ValueError(f'Number out of range: {value}')
    return number


def _to_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode()
    return str(value)


def _to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    return dateutil.parser.isoparse(str(value)).date()


def _to_time(value: Any) -> datetime.time:
    if isinstance(value, datetime.datetime):
        return value.time()
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, datetime.timedelta):
        # MySQL TIME columns come back as timedelta from PyMySQL
        return (datetime.datetime.min + value).time()
    if isinstance(value, bytes):
        value = value.decode()
    return datetime.time.fromisoformat(str(value))


def _to_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    if isinstance(value, (int, float)):
        return datetime.datetime.fromtimestamp(value)
    if isinstance(value, bytes):
        value = value.decode()
    return dateutil.parser.isoparse(str(value))


def _to_bool(value: Any) -> bool:
    if isinstance(value, (bytes, bytearray)):
        # BIT(1) columns
        return any(value)
    if isinstance(value, str):
        return value.strip().lower() in {'1', 't', 'true', 'y', 'yes'}
    return bool(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as err:
        raise ValueError(f'Cannot read {value!r} as Decimal') from err


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode()
    return bytes(value)


_GETTERS = {
    str: _to_str,
    bool: _to_bool,
    int: int,
    float: float,
    Decimal: _to_decimal,
    datetime.datetime: _to_datetime,
    datetime.date: _to_date,
    datetime.time: _to_time,
    bytes: _to_bytes,
    bytearray: lambda v: bytearray(_to_bytes(v)),
}


def get_column_value(value: Any) -> Any:
    """Detach a raw driver value from the cursor.

    Buffer objects (e.g. ``memoryview`` from psycopg BYTEA columns) are
    copied to ``bytes`` so the result never references driver memory.
    """
    if isinstance(value, memoryview):
        return value.tobytes()
    return value


def get_result_set_value(rs: 'ResultSet', index: int,
                         required_type: type | None = None) -> Any:
    """Retrieve a column value from the current row as the required type.

    Uses a typed getter for the common scalar types, falling back to the raw
    driver value for unknown types. The returned value may not be an
    instance of ``required_type`` in that case; callers are expected to
    check it.

    Enums are returned as either the raw string or an int, leaving the
    conversion to the caller (e.g. a converter).

    Args:
        rs: Result cursor positioned on a row
        index: 1-based column index
        required_type: Python type to read the column as

    Returns
        The column value, or None for SQL NULL
    """
    value = get_column_value(rs.get_object(index))
    if value is None or required_type is None:
        return value

    if isinstance(required_type, type) and issubclass(required_type, enum.Enum):
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return to_int32(value)
        return str(value)

    getter = _GETTERS.get(required_type)
    if getter is None:
        return value

    try:
        return getter(value)
    except (TypeError, ValueError) as err:
        logger.debug(f'Column {index} could not be read as {required_type.__name__}: {err}')
        return value
