"""
Typed parameter binding for prepared statements.

`set_value` maps a value plus a declared SqlType to the matching typed
setter on a PreparedStatement. The setter classes bind whole parameter
lists (and batches of them) through it.
"""
import datetime
import io
from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Protocol, TypeVar, runtime_checkable

from sqlbean.statement import PreparedStatement
from sqlbean.types import SqlType

__all__ = [
    'CLOB_LENGTH',
    'set_value',
    'PreparedStatementSetter',
    'BatchSetter',
    'ParametrizedBatchSetter',
    'DefaultSetter',
    'DefaultSetterUnknownType',
    'DefaultBatchSetter',
]

T = TypeVar('T', contravariant=True)

# Strings longer than this are bound as character streams for CLOB/NCLOB
CLOB_LENGTH = 4000

_STRING_TYPES = {SqlType.CHAR, SqlType.VARCHAR, SqlType.LONGVARCHAR}
_NSTRING_TYPES = {SqlType.NCHAR, SqlType.NVARCHAR, SqlType.LONGNVARCHAR}
_LOB_TYPES = {SqlType.CLOB, SqlType.NCLOB}
_DECIMAL_TYPES = {SqlType.DECIMAL, SqlType.NUMERIC}
_BINARY_TYPES = {SqlType.BINARY, SqlType.VARBINARY, SqlType.LONGVARBINARY, SqlType.BLOB}


@runtime_checkable
class PreparedStatementSetter(Protocol):
    """Binds all parameters of a prepared statement."""

    def __call__(self, ps: PreparedStatement) -> None:
        ...


@runtime_checkable
class BatchSetter(Protocol):
    """Binds the parameters of the i-th statement of a batch."""

    batch_size: int

    def set_values(self, ps: PreparedStatement, i: int) -> None:
        ...


@runtime_checkable
class ParametrizedBatchSetter(Protocol[T]):
    """Binds the parameters for one item of a batch."""

    def __call__(self, ps: PreparedStatement, item: T) -> None:
        ...


def _is_string_value(value: Any) -> bool:
    return isinstance(value, (str, io.StringIO))


def _string_value(value: Any) -> str:
    if isinstance(value, io.StringIO):
        return value.getvalue()
    return str(value)


def _bind_lob(ps: PreparedStatement, index: int, sql_type: int, value: Any) -> None:
    if not _is_string_value(value):
        ps.set_object(index, value, sql_type)
        return
    text = _string_value(value)
    national = sql_type == SqlType.NCLOB
    if len(text) > CLOB_LENGTH:
        if national:
            ps.set_ncharacter_stream(index, io.StringIO(text), len(text))
        else:
            ps.set_character_stream(index, io.StringIO(text), len(text))
    elif national:
        ps.set_nstring(index, text)
    else:
        ps.set_string(index, text)


def _bind_date(ps: PreparedStatement, index: int, value: Any) -> None:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            ps.set_date(index, value, value.tzinfo)
        else:
            ps.set_date(index, value.date())
    elif isinstance(value, datetime.date):
        ps.set_date(index, value)
    else:
        ps.set_object(index, value, SqlType.DATE)


def _bind_time(ps: PreparedStatement, index: int, value: Any) -> None:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            ps.set_time(index, value, value.tzinfo)
        else:
            ps.set_time(index, value.time())
    elif isinstance(value, datetime.time):
        ps.set_time(index, value)
    else:
        ps.set_object(index, value, SqlType.TIME)


def _bind_timestamp(ps: PreparedStatement, index: int, value: Any) -> None:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            ps.set_timestamp(index, value, value.tzinfo)
        else:
            ps.set_timestamp(index, value)
    elif isinstance(value, datetime.date):
        ps.set_timestamp(index, datetime.datetime.combine(value, datetime.time.min))
    else:
        ps.set_object(index, value, SqlType.TIMESTAMP)


def set_value(ps: PreparedStatement, index: int, sql_type: int | None, value: Any) -> None:
    """Bind a value to a prepared statement parameter.

    Dispatches on the declared type tag:

    - None value: typed NULL using ``sql_type``
    - CHAR/VARCHAR/LONGVARCHAR: string, NCHAR/NVARCHAR/LONGNVARCHAR: national string
    - CLOB/NCLOB: character stream above 4000 characters, inline string below
    - DECIMAL/NUMERIC: Decimal values directly, anything else via ``set_object``
    - BINARY/VARBINARY/LONGVARBINARY/BLOB: byte buffers directly, anything
      else via ``set_object``
    - BOOLEAN: bool values directly, anything else via ``set_object``
    - DATE/TIME/TIMESTAMP: aware datetimes use the zone-aware setter, other
      dates and times are narrowed or widened to the exact type
    - any other tag, or no tag at all: ``set_object``, whose behaviour is
      up to the driver

    Args:
        ps: The prepared statement
        index: 1-based parameter index
        sql_type: The SqlType tag, or None when the type is unknown
        value: The value to bind
    """
    if ps is None:
        raise TypeError('The PreparedStatement cannot be None.')

    sql_type = SqlType.coerce(sql_type)

    if value is None:
        ps.set_null(index, sql_type if sql_type is not None else SqlType.NULL)
        return

    if sql_type is None:
        ps.set_object(index, value)
    elif sql_type in _STRING_TYPES:
        ps.set_string(index, str(value))
    elif sql_type in _NSTRING_TYPES:
        ps.set_nstring(index, str(value))
    elif sql_type in _LOB_TYPES:
        _bind_lob(ps, index, sql_type, value)
    elif sql_type in _DECIMAL_TYPES:
        if isinstance(value, Decimal):
            ps.set_decimal(index, value)
        else:
            ps.set_object(index, value, sql_type)
    elif sql_type in _BINARY_TYPES:
        if isinstance(value, (bytes, bytearray, memoryview)):
            ps.set_bytes(index, value)
        else:
            ps.set_object(index, value, sql_type)
    elif sql_type == SqlType.BOOLEAN:
        if isinstance(value, bool):
            ps.set_boolean(index, value)
        else:
            ps.set_object(index, value, SqlType.BOOLEAN)
    elif sql_type == SqlType.DATE:
        _bind_date(ps, index, value)
    elif sql_type == SqlType.TIME:
        _bind_time(ps, index, value)
    elif sql_type == SqlType.TIMESTAMP:
        _bind_timestamp(ps, index, value)
    else:
        ps.set_object(index, value, sql_type)


def _check_types(params: Sequence, sql_types: Sequence[int] | None) -> None:
    if sql_types is None:
        raise TypeError('sql_types cannot be None; use DefaultSetterUnknownType instead.')
    if len(sql_types) < len(params):
        raise ValueError(f'{len(params)} parameters but only {len(sql_types)} sql types')


class DefaultSetter:
    """Binds a parameter list with one declared SqlType per parameter."""

    def __init__(self, params: Sequence[Any] | None, sql_types: Sequence[int]) -> None:
        if params is not None:
            _check_types(params, sql_types)
        self.params = params
        self.sql_types = sql_types

    def __call__(self, ps: PreparedStatement) -> None:
        if self.params is None:
            return
        for i, param in enumerate(self.params):
            set_value(ps, i + 1, self.sql_types[i], param)


class DefaultSetterUnknownType:
    """Binds a parameter list without declared types."""

    def __init__(self, params: Sequence[Any] | None) -> None:
        self.params = params

    def __call__(self, ps: PreparedStatement) -> None:
        if self.params is None:
            return
        for i, param in enumerate(self.params):
            set_value(ps, i + 1, None, param)


class DefaultBatchSetter:
    """Binds a list of parameter lists sharing the same SqlTypes."""

    def __init__(self, batch_params: Sequence[Sequence[Any]], sql_types: Sequence[int] | None) -> None:
        self.batch_params = batch_params
        self.sql_types = sql_types

    @property
    def batch_size(self) -> int:
        return len(self.batch_params)

    def set_values(self, ps: PreparedStatement, i: int) -> None:
        params = self.batch_params[i]
        if self.sql_types is None:
            for pos, param in enumerate(params):
                set_value(ps, pos + 1, None, param)
            return
        _check_types(params, self.sql_types)
        for pos, param in enumerate(params):
            set_value(ps, pos + 1, self.sql_types[pos], param)
