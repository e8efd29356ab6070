"""
Test the synchronous facade against mock connections.
"""
import logging
import sqlite3

import pymysql
import pytest
from sqlbean.binding import DefaultBatchSetter
from sqlbean.connection import Connection
from sqlbean.database import Database, DefaultCreator, QueryStatementFunction
from sqlbean.database import SimpleUpdateStatementFunction, UpdateStatementFunction
from sqlbean.exceptions import DataAccessError, IncorrectResultSizeError
from sqlbean.exceptions import TypeMismatchError, UnsupportedOperationError
from sqlbean.extract import DefaultExtractor
from sqlbean.statement import SUCCESS_NO_INFO
from sqlbean.types import SqlType


def first_column(rs, row_number):
    return rs.get_object(1)


@pytest.fixture
def rows_database(mocker, create_mock_cursor):
    """Factory for a Database whose every query returns ``rows``."""
    def factory(rows, columns=('id',)):
        cursor = create_mock_cursor(rows, columns)
        dbapi_connection = mocker.MagicMock()
        dbapi_connection.cursor.return_value = cursor
        data_source = mocker.Mock(spec=['get_connection', 'close'])
        data_source.get_connection.side_effect = lambda: Connection(dbapi_connection)
        return Database(data_source)

    return factory


class TestLifecycle:

    def test_data_source_required(self):
        with pytest.raises(TypeError):
            Database(None)

    def test_statement_and_connection_released(self, mock_database, mock_cursor,
                                               mock_dbapi_connection):
        assert mock_database.execute(lambda statement: 'done') == 'done'
        mock_cursor.close.assert_called_once()
        mock_dbapi_connection.close.assert_called_once()

    def test_released_when_callback_fails(self, mock_database, mock_cursor,
                                          mock_dbapi_connection):
        def callback(statement):
            raise KeyError('callback')

        with pytest.raises(KeyError):
            mock_database.execute(callback)
        mock_cursor.close.assert_called_once()
        mock_dbapi_connection.close.assert_called_once()

    def test_released_when_creator_fails(self, mock_database, mock_dbapi_connection):
        def creator(connection):
            raise sqlite3.OperationalError('cannot prepare')

        with pytest.raises(DataAccessError):
            mock_database.execute_prepared(creator, lambda ps: None)
        mock_dbapi_connection.close.assert_called_once()

    def test_no_connection_degrades_to_none(self, mock_database, mock_data_source, caplog):
        mock_data_source.get_connection.return_value = None
        with caplog.at_level(logging.WARNING):
            assert mock_database.execute(lambda statement: 1) is None
            assert mock_database.query('SELECT 1', DefaultExtractor(first_column)) is None
            assert mock_database.update('DELETE FROM users') == -1
            assert mock_database.update_args('DELETE FROM users WHERE id = ?', [1]) == -1
        assert 'Cannot retrieve a connection.' in caplog.text

    def test_driver_error_wrapped_with_sql(self, mock_database, mock_cursor):
        mock_cursor.execute.side_effect = pymysql.err.ProgrammingError(1064, 'syntax error')

        with pytest.raises(DataAccessError) as exc_info:
            mock_database.query('SELEC 1', DefaultExtractor(first_column))

        error = exc_info.value
        assert error.sql == 'SELEC 1'
        assert error.error_code == 1064
        assert isinstance(error.__cause__, pymysql.err.ProgrammingError)
        assert 'SELEC 1' in str(error)
        assert 'syntax error' in str(error)

    def test_prepared_driver_error_carries_creator_sql(self, mock_database, mock_cursor):
        mock_cursor.execute.side_effect = sqlite3.IntegrityError('UNIQUE constraint failed')
        with pytest.raises(DataAccessError) as exc_info:
            mock_database.update_args('INSERT INTO items VALUES(?)', [1])
        assert exc_info.value.sql == 'INSERT INTO items VALUES(?)'

    def test_callback_without_sql(self, mock_database, mock_cursor):
        def callback(statement):
            raise sqlite3.OperationalError('gone')

        with pytest.raises(DataAccessError) as exc_info:
            mock_database.execute(callback)
        assert exc_info.value.sql is None

    def test_library_errors_not_wrapped(self, mock_database):
        def callback(statement):
            raise TypeMismatchError('mismatch')

        with pytest.raises(TypeMismatchError):
            mock_database.execute(callback)


class TestCreatorsAndFunctions:

    @pytest.mark.parametrize(('sql', 'error'), [(None, TypeError), ('', ValueError)])
    def test_default_creator_rejects_missing_sql(self, sql, error):
        with pytest.raises(error):
            DefaultCreator(sql)

    def test_default_creator(self, mock_connection):
        ps = DefaultCreator('SELECT ?', return_generated_keys=True)(mock_connection)
        assert ps.sql == 'SELECT ?'
        assert ps.return_generated_keys is True

    def test_query_function(self, mock_connection, create_mock_cursor):
        cursor = create_mock_cursor([(1,), (2,)])
        mock_connection.dbapi_connection.cursor.return_value = cursor
        function = QueryStatementFunction(DefaultExtractor(first_column), 'SELECT id FROM t')
        assert function(mock_connection.create_statement()) == [1, 2]
        assert function.sql == 'SELECT id FROM t'

    def test_update_functions(self, mock_connection, mock_cursor):
        mock_cursor.rowcount = 4
        mock_cursor.lastrowid = 9
        statement = mock_connection.create_statement()
        assert SimpleUpdateStatementFunction('DELETE FROM t')(statement) == 4
        assert UpdateStatementFunction('DELETE FROM t')(statement) == 4
        assert UpdateStatementFunction('INSERT INTO t VALUES (1)', True)(statement) == 9


class TestUpdates:

    def test_update_args_binds_typed_values(self, mock_database, mock_cursor):
        count = mock_database.update_args(
            'INSERT INTO users VALUES(?,?,?)', [3, 'X', 10],
            [SqlType.INTEGER, SqlType.VARCHAR, SqlType.INTEGER])
        assert count == 1
        mock_cursor.execute.assert_called_once_with('INSERT INTO users VALUES(?,?,?)',
                                                    (3, 'X', 10))

    def test_generated_key_zero_without_auto_increment(self, mock_database, mock_cursor):
        mock_cursor.lastrowid = 0
        key = mock_database.update_args('INSERT INTO users VALUES(?,?,?)', [3, 'X', 10],
                                        [SqlType.INTEGER, SqlType.VARCHAR, SqlType.INTEGER],
                                        return_generated_keys=True)
        assert key == 0

    def test_generated_key(self, mock_database, mock_cursor):
        mock_cursor.lastrowid = 17
        assert mock_database.update('INSERT INTO items (label) VALUES (1)', True) == 17

    def test_update_with_setter(self, mock_database, mock_cursor):
        mock_database.update_with('UPDATE t SET a = ?', lambda ps: ps.set_string(1, 'v'))
        mock_cursor.execute.assert_called_once_with('UPDATE t SET a = ?', ('v',))

    def test_update_prepared_without_setter(self, mock_database, mock_cursor):
        mock_cursor.rowcount = 5
        assert mock_database.update_prepared(DefaultCreator('DELETE FROM t')) == 5


class TestBatches:

    def test_batch_update(self, mock_database, mock_cursor):
        mock_cursor.rowcount = 2
        counts = mock_database.batch_update(
            'INSERT INTO t VALUES(?)', DefaultBatchSetter([[1], [2]], [SqlType.INTEGER]))
        assert counts == [SUCCESS_NO_INFO, SUCCESS_NO_INFO]
        mock_cursor.executemany.assert_called_once_with('INSERT INTO t VALUES(?)',
                                                        [(1,), (2,)])

    def test_batch_update_items(self, mock_database, mock_cursor):
        mock_database.batch_update_items('INSERT INTO t VALUES(?)', ['a', 'b'],
                                         lambda ps, item: ps.set_string(1, item))
        mock_cursor.executemany.assert_called_once_with('INSERT INTO t VALUES(?)',
                                                        [('a',), ('b',)])

    @pytest.mark.parametrize('batch_args', [None, []])
    def test_empty_batch_args_do_nothing(self, mock_database, mock_data_source, batch_args):
        assert mock_database.batch_update_args('INSERT INTO t VALUES(?)', batch_args) is None
        assert mock_database.batch_update_items('INSERT INTO t VALUES(?)', batch_args,
                                                lambda ps, item: None) is None
        mock_data_source.get_connection.assert_not_called()

    def test_unsupported_batch_checked_before_binding(self, mocker, mock_dbapi_connection,
                                                      mock_cursor):
        data_source = mocker.Mock(spec=['get_connection', 'close'])
        data_source.get_connection.return_value = Connection(
            mock_dbapi_connection, supports_batch_updates=False)
        batch_setter = mocker.Mock(batch_size=2)

        with pytest.raises(UnsupportedOperationError):
            Database(data_source).batch_update('INSERT INTO t VALUES(?)', batch_setter)
        batch_setter.set_values.assert_not_called()
        mock_cursor.executemany.assert_not_called()
        mock_dbapi_connection.close.assert_called_once()

    def test_unsupported_batch_items(self, mocker, mock_dbapi_connection):
        data_source = mocker.Mock(spec=['get_connection', 'close'])
        data_source.get_connection.return_value = Connection(
            mock_dbapi_connection, supports_batch_updates=False)
        setter = mocker.Mock()

        with pytest.raises(UnsupportedOperationError):
            Database(data_source).batch_update_items('INSERT INTO t VALUES(?)', [1], setter)
        setter.assert_not_called()

    def test_batch_items_sql_must_not_be_empty(self, mock_database):
        with pytest.raises(ValueError):
            mock_database.batch_update_items('', [1], lambda ps, item: None)


class TestQueries:

    def test_query_for_list(self, rows_database):
        db = rows_database([(1,), (2,)])
        assert db.query_for_list('SELECT id FROM t', first_column) == [1, 2]

    def test_query_for_list_with_args(self, rows_database):
        db = rows_database([(1,)])
        assert db.query_for_list('SELECT id FROM t WHERE id = ?', first_column, args=[1]) == [1]
        cursor = db.data_source.get_connection().dbapi_connection.cursor.return_value
        cursor.execute.assert_called_once_with('SELECT id FROM t WHERE id = ?', (1,))

    def test_query_for_object(self, rows_database):
        assert rows_database([(5,)]).query_for_object('SELECT id FROM t', first_column) == 5

    @pytest.mark.parametrize(('rows', 'actual'), [([], 0), ([(1,), (2,)], 2)])
    def test_query_for_object_wrong_size(self, rows_database, rows, actual):
        with pytest.raises(IncorrectResultSizeError) as exc_info:
            rows_database(rows).query_for_object('SELECT id FROM t', first_column)
        assert (exc_info.value.expected_size, exc_info.value.actual_size) == (1, actual)

    def test_query_for_object_or_else_get(self, rows_database):
        db = rows_database([])
        assert db.query_for_object_or_else_get('SELECT id FROM t', first_column,
                                               lambda: 'fallback') == 'fallback'

    def test_query_for_object_or_else_get_too_many_rows(self, rows_database):
        with pytest.raises(IncorrectResultSizeError):
            rows_database([(1,), (2,)]).query_for_object_or_else_get(
                'SELECT id FROM t', first_column, lambda: 0)

    def test_query_for_list_or_else_get(self, rows_database):
        assert rows_database([]).query_for_list_or_else_get(
            'SELECT id FROM t', first_column, lambda: ['default']) == ['default']
        assert rows_database([(1,)]).query_for_list_or_else_get(
            'SELECT id FROM t', first_column, lambda: ['default']) == [1]

    def test_query_or_else_get(self, rows_database):
        db = rows_database([(1,)])
        assert db.query_or_else_get('SELECT id FROM t', lambda rs: None, lambda: 'x') == 'x'
        assert db.query_or_else_get('SELECT id FROM t', lambda rs: 0, lambda: 'x') == 0

    def test_or_else_requires_supplier(self, rows_database):
        with pytest.raises(TypeError):
            rows_database([]).query_for_object_or_else_get('SELECT id FROM t',
                                                           first_column, None)

    def test_query_with_mapper_or_extractor(self, rows_database):
        db = rows_database([(1,), (2,)])
        assert db.query_with('SELECT id FROM t', mapper=first_column) == [1, 2]
        db = rows_database([(1,), (2,)])
        assert db.query_with('SELECT id FROM t', extractor=lambda rs: 'whole') == 'whole'

    def test_query_prepared_needs_one_of_extractor_or_mapper(self, mock_database):
        creator = DefaultCreator('SELECT 1')
        with pytest.raises(TypeError):
            mock_database.query_prepared(creator)
        with pytest.raises(TypeError):
            mock_database.query_prepared(creator, extractor=lambda rs: 1, mapper=first_column)

    def test_query_args_typed(self, rows_database):
        db = rows_database([('Ann',)], ('name',))
        result = db.query_args('SELECT name FROM users WHERE id = ?', [1],
                               DefaultExtractor(first_column), [SqlType.INTEGER])
        assert result == ['Ann']
