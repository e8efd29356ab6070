"""
Row mappers and result extractors.

A row mapper turns the current row of a ResultSet into one object; a result
extractor consumes the whole ResultSet and returns a single result. Plain
functions with the right signature satisfy both protocols.
"""
from collections.abc import Collection
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

import pandas as pd

from sqlbean.exceptions import IncorrectResultSizeError
from sqlbean.statement import ResultSet, get_column_name

__all__ = [
    'RowMapper',
    'ResultSetExtractor',
    'DefaultExtractor',
    'DataFrameExtractor',
    'ColumnMapRowMapper',
    'SingleColumnRowMapper',
    'nullable_single_result',
    'nullable_empty_result',
]

T = TypeVar('T')
T_co = TypeVar('T_co', covariant=True)


@runtime_checkable
class RowMapper(Protocol[T_co]):
    """Maps the current row to an object.

    Must not advance the cursor. May return None.
    """

    def __call__(self, rs: ResultSet, row_number: int) -> T_co | None:
        ...


@runtime_checkable
class ResultSetExtractor(Protocol[T_co]):
    """Consumes a ResultSet and produces one result.

    Iteration of the cursor is the extractor's responsibility.
    """

    def __call__(self, rs: ResultSet) -> T_co | None:
        ...


class DefaultExtractor(Generic[T]):
    """Collects the mapped rows of a ResultSet into a list.

    ``limit`` caps the number of rows read (its absolute value is used);
    0 reads every row. Row numbers passed to the mapper start at 0. An
    empty ResultSet yields an empty list.
    """

    def __init__(self, mapper: RowMapper[T], limit: int = 0) -> None:
        if mapper is None:
            raise TypeError('RowMapper cannot be None.')
        self.mapper = mapper
        self.limit = abs(limit)

    def __call__(self, rs: ResultSet) -> list[T | None]:
        results: list[T | None] = []
        row_number = 0
        while (not self.limit or row_number < self.limit) and rs.next():
            results.append(self.mapper(rs, row_number))
            row_number += 1
        return results


class DataFrameExtractor:
    """Collects a ResultSet into a pandas DataFrame.

    Column labels are kept for empty results; the Python type of each
    column, inferred from the first non-null value, is stored in
    ``df.attrs['column_types']``.
    """

    def __call__(self, rs: ResultSet) -> pd.DataFrame:
        metadata = rs.metadata
        columns = [get_column_name(metadata, i) for i in range(1, metadata.column_count + 1)]
        records = []
        while rs.next():
            records.append([rs.get_value(i) for i in range(1, metadata.column_count + 1)])

        if not records:
            df = pd.DataFrame(columns=columns)
        else:
            df = pd.DataFrame.from_records(records, columns=columns)
        df.attrs['column_types'] = {
            name: _first_type(records, i) for i, name in enumerate(columns)
        }
        return df


def _first_type(records: list[list[Any]], i: int) -> str | None:
    for record in records:
        if record[i] is not None:
            return type(record[i]).__name__
    return None


class ColumnMapRowMapper:
    """Maps a row to a dict keyed by column label."""

    def __call__(self, rs: ResultSet, row_number: int) -> dict[str, Any]:
        metadata = rs.metadata
        return {
            get_column_name(metadata, i): rs.get_value(i)
            for i in range(1, metadata.column_count + 1)
        }


class SingleColumnRowMapper(Generic[T]):
    """Maps a single-column row to its value, read as ``required_type``."""

    def __init__(self, required_type: type[T] | None = None) -> None:
        self.required_type = required_type

    def __call__(self, rs: ResultSet, row_number: int) -> T | None:
        count = rs.metadata.column_count
        if count != 1:
            raise IncorrectResultSizeError(1, count, f'Expected 1 column, got {count}')
        return rs.get_value(1, self.required_type)


def nullable_single_result(results: Collection[T] | None) -> T | None:
    """Return the only element of a collection.

    Raises
        IncorrectResultSizeError: If the collection is empty or has more
            than one element
    """
    if not results:
        raise IncorrectResultSizeError(1, 0)
    if len(results) > 1:
        raise IncorrectResultSizeError(1, len(results))
    return next(iter(results))


def nullable_empty_result(results: Collection[T] | None) -> T | None:
    """Return the only element of a collection, or None when it is empty.

    Raises
        IncorrectResultSizeError: If the collection has more than one element
    """
    if not results:
        return None
    if len(results) > 1:
        raise IncorrectResultSizeError(1, len(results))
    return next(iter(results))
