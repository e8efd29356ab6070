"""
Test typed parameter binding.
"""
import datetime
import io
from decimal import Decimal

import pytest
from sqlbean.binding import CLOB_LENGTH, DefaultBatchSetter, DefaultSetter
from sqlbean.binding import DefaultSetterUnknownType, set_value
from sqlbean.types import SqlType

UTC = datetime.UTC
PLUS_2 = datetime.timezone(datetime.timedelta(hours=2))


class TestSetValue:
    """Test suite for set_value dispatch"""

    @pytest.mark.parametrize('tag', list(SqlType) + [None, 424242])
    def test_none_binds_typed_null(self, mock_prepared_statement, tag):
        set_value(mock_prepared_statement, 1, tag, None)
        expected = SqlType.NULL if tag is None else tag
        mock_prepared_statement.set_null.assert_called_once_with(1, expected)

    def test_statement_required(self):
        with pytest.raises(TypeError):
            set_value(None, 1, SqlType.VARCHAR, 'x')

    def test_unknown_type_uses_set_object(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 2, None, 5)
        mock_prepared_statement.set_object.assert_called_once_with(2, 5)

    @pytest.mark.parametrize('tag', [SqlType.CHAR, SqlType.VARCHAR, SqlType.LONGVARCHAR])
    def test_string_tags(self, mock_prepared_statement, tag):
        set_value(mock_prepared_statement, 1, tag, 12)
        mock_prepared_statement.set_string.assert_called_once_with(1, '12')

    @pytest.mark.parametrize('tag', [SqlType.NCHAR, SqlType.NVARCHAR, SqlType.LONGNVARCHAR])
    def test_national_string_tags(self, mock_prepared_statement, tag):
        set_value(mock_prepared_statement, 1, tag, 'é')
        mock_prepared_statement.set_nstring.assert_called_once_with(1, 'é')

    def test_raw_int_tag_is_coerced(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, 12, 'x')
        mock_prepared_statement.set_string.assert_called_once_with(1, 'x')

    def test_short_clob_binds_inline(self, mock_prepared_statement):
        text = 'a' * CLOB_LENGTH
        set_value(mock_prepared_statement, 1, SqlType.CLOB, text)
        mock_prepared_statement.set_string.assert_called_once_with(1, text)
        mock_prepared_statement.set_character_stream.assert_not_called()

    def test_long_clob_binds_stream(self, mock_prepared_statement):
        text = 'a' * (CLOB_LENGTH + 1)
        set_value(mock_prepared_statement, 1, SqlType.CLOB, text)
        index, reader, length = mock_prepared_statement.set_character_stream.call_args.args
        assert (index, length) == (1, CLOB_LENGTH + 1)
        assert reader.read() == text
        mock_prepared_statement.set_string.assert_not_called()

    def test_long_nclob_from_string_io(self, mock_prepared_statement):
        text = 'b' * (CLOB_LENGTH + 10)
        set_value(mock_prepared_statement, 3, SqlType.NCLOB, io.StringIO(text))
        mock_prepared_statement.set_ncharacter_stream.assert_called_once()
        assert mock_prepared_statement.set_ncharacter_stream.call_args.args[2] == len(text)

    def test_short_nclob_binds_nstring(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.NCLOB, 'short')
        mock_prepared_statement.set_nstring.assert_called_once_with(1, 'short')

    def test_clob_non_string_uses_set_object(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.CLOB, b'bytes')
        mock_prepared_statement.set_object.assert_called_once_with(1, b'bytes', SqlType.CLOB)

    def test_decimal(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.DECIMAL, Decimal('1.5'))
        mock_prepared_statement.set_decimal.assert_called_once_with(1, Decimal('1.5'))

    def test_numeric_non_decimal_uses_set_object(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.NUMERIC, 1.5)
        mock_prepared_statement.set_object.assert_called_once_with(1, 1.5, SqlType.NUMERIC)

    def test_boolean(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.BOOLEAN, False)
        mock_prepared_statement.set_boolean.assert_called_once_with(1, False)

    def test_boolean_non_bool_uses_set_object(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.BOOLEAN, 1)
        mock_prepared_statement.set_object.assert_called_once_with(1, 1, SqlType.BOOLEAN)

    @pytest.mark.parametrize('tag', [SqlType.BINARY, SqlType.VARBINARY,
                                     SqlType.LONGVARBINARY, SqlType.BLOB])
    def test_binary_binds_bytes(self, mock_prepared_statement, tag):
        set_value(mock_prepared_statement, 2, tag, b'\x00\x01')
        mock_prepared_statement.set_bytes.assert_called_once_with(2, b'\x00\x01')
        mock_prepared_statement.set_object.assert_not_called()

    def test_binary_non_bytes_uses_set_object(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.VARBINARY, 'abc')
        mock_prepared_statement.set_object.assert_called_once_with(1, 'abc', SqlType.VARBINARY)

    def test_date_from_date(self, mock_prepared_statement):
        day = datetime.date(2024, 5, 6)
        set_value(mock_prepared_statement, 1, SqlType.DATE, day)
        mock_prepared_statement.set_date.assert_called_once_with(1, day)

    def test_date_narrows_naive_datetime(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.DATE, datetime.datetime(2024, 5, 6, 7, 8))
        mock_prepared_statement.set_date.assert_called_once_with(1, datetime.date(2024, 5, 6))

    def test_date_aware_datetime_uses_zone(self, mock_prepared_statement):
        value = datetime.datetime(2024, 5, 6, 23, 30, tzinfo=PLUS_2)
        set_value(mock_prepared_statement, 1, SqlType.DATE, value)
        mock_prepared_statement.set_date.assert_called_once_with(1, value, PLUS_2)

    def test_date_other_value_uses_set_object(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.DATE, '2024-05-06')
        mock_prepared_statement.set_object.assert_called_once_with(1, '2024-05-06', SqlType.DATE)

    def test_time(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.TIME, datetime.datetime(2024, 5, 6, 7, 8))
        mock_prepared_statement.set_time.assert_called_once_with(1, datetime.time(7, 8))

    def test_timestamp_widens_date(self, mock_prepared_statement):
        set_value(mock_prepared_statement, 1, SqlType.TIMESTAMP, datetime.date(2024, 5, 6))
        mock_prepared_statement.set_timestamp.assert_called_once_with(
            1, datetime.datetime(2024, 5, 6))

    def test_timestamp_aware(self, mock_prepared_statement):
        value = datetime.datetime(2024, 5, 6, 7, 8, tzinfo=UTC)
        set_value(mock_prepared_statement, 1, SqlType.TIMESTAMP, value)
        mock_prepared_statement.set_timestamp.assert_called_once_with(1, value, UTC)

    @pytest.mark.parametrize('tag', [SqlType.INTEGER, SqlType.BLOB, SqlType.OTHER])
    def test_other_tags_use_set_object(self, mock_prepared_statement, tag):
        set_value(mock_prepared_statement, 4, tag, 7)
        mock_prepared_statement.set_object.assert_called_once_with(4, 7, tag)


class TestSetters:

    def test_default_setter_binds_in_order(self, mock_prepared_statement):
        DefaultSetter([3, 'X', None], [SqlType.INTEGER, SqlType.VARCHAR, SqlType.INTEGER])(
            mock_prepared_statement)
        mock_prepared_statement.set_object.assert_called_once_with(1, 3, SqlType.INTEGER)
        mock_prepared_statement.set_string.assert_called_once_with(2, 'X')
        mock_prepared_statement.set_null.assert_called_once_with(3, SqlType.INTEGER)

    def test_default_setter_needs_a_type_per_param(self):
        with pytest.raises(ValueError):
            DefaultSetter([1, 2], [SqlType.INTEGER])

    def test_default_setter_none_params(self, mock_prepared_statement):
        DefaultSetter(None, [])(mock_prepared_statement)
        assert mock_prepared_statement.mock_calls == []

    def test_unknown_type_setter(self, mock_prepared_statement):
        DefaultSetterUnknownType(['a', 2])(mock_prepared_statement)
        assert [c.args for c in mock_prepared_statement.set_object.call_args_list] == [
            (1, 'a'), (2, 2)]

    def test_batch_setter(self, mock_prepared_statement):
        setter = DefaultBatchSetter([[1, 'a'], [2, 'b']], [SqlType.INTEGER, SqlType.VARCHAR])
        assert setter.batch_size == 2
        setter.set_values(mock_prepared_statement, 1)
        mock_prepared_statement.set_object.assert_called_once_with(1, 2, SqlType.INTEGER)
        mock_prepared_statement.set_string.assert_called_once_with(2, 'b')

    def test_batch_setter_without_types(self, mock_prepared_statement):
        DefaultBatchSetter([[1]], None).set_values(mock_prepared_statement, 0)
        mock_prepared_statement.set_object.assert_called_once_with(1, 1)
