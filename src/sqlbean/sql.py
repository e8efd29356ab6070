"""
SQL text handling for prepared statements.

Statements are always written with positional ``?`` placeholders. Before
execution they are rewritten to the placeholder style of the DB-API driver
behind the connection:

- ``qmark`` (sqlite3): unchanged
- ``format``/``pyformat`` (PyMySQL, psycopg): ``?`` becomes ``%s`` and
  every literal percent sign is doubled

A ``?`` inside a quoted literal or identifier is never a placeholder.
"""
import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Protocol, runtime_checkable

__all__ = [
    'SqlProvider',
    'get_sql',
    'tokenize_sql',
    'count_placeholders',
    'has_placeholders',
    'standardize_placeholders',
    'insert_table',
]


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    POSITIONAL_PH = auto()      # ?


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^'\\]|\\.|'')*'|"(?:[^"\\]|\\.|"")*"|`(?:[^`]|``)*`)
    |(?P<qmark>\?)
""", re.VERBOSE)

_FORMAT_STYLES = {'format', 'pyformat'}

_INSERT_TABLE = re.compile(r"""
    ^\s*(?:INSERT|REPLACE)\s+(?:OR\s+\w+\s+)?INTO\s+
    (?P<table>[\w$."`\[\]]+)
""", re.IGNORECASE | re.VERBOSE)


@runtime_checkable
class SqlProvider(Protocol):
    """Object able to report the SQL text it executes."""

    @property
    def sql(self) -> str | None:
        ...


def get_sql(obj: Any) -> str | None:
    """Return the SQL exposed by a callback, or None when it has none.
    """
    if isinstance(obj, SqlProvider):
        return obj.sql
    return None


def tokenize_sql(sql: str) -> list[Token]:
    """Split SQL into literal, placeholder and plain text tokens.

    Parameters
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        ttype = TokenType.STRING_LITERAL if match.group('string') else TokenType.POSITIONAL_PH
        tokens.append(Token(ttype, match.group(0), start, end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def count_placeholders(sql: str | None) -> int:
    """Count the positional placeholders outside of quoted literals.
    """
    if not sql or '?' not in sql:
        return 0
    return sum(1 for t in tokenize_sql(sql) if t.type == TokenType.POSITIONAL_PH)


def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has any positional placeholders.
    """
    return count_placeholders(sql) > 0


def standardize_placeholders(sql: str, paramstyle: str = 'qmark') -> str:
    """Rewrite ``?`` placeholders for the driver's DB-API paramstyle.

    Parameters
        sql: SQL query string written with ``?`` placeholders
        paramstyle: The driver module's ``paramstyle`` attribute

    Returns
        SQL ready to be passed to ``cursor.execute`` together with a
        parameter sequence

    Raises
        ValueError: If the paramstyle is not positional
    """
    if not sql or paramstyle == 'qmark':
        return sql

    if paramstyle not in _FORMAT_STYLES:
        raise ValueError(f'Unsupported paramstyle: {paramstyle}')

    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH:
            result.append('%s')
        else:
            result.append(token.text.replace('%', '%%'))
    return ''.join(result)


def insert_table(sql: str | None) -> str | None:
    """Return the unquoted target table of an INSERT or REPLACE.

    Returns None for any other statement. A schema prefix is kept
    (``main.users``).
    """
    if not sql:
        return None
    match = _INSERT_TABLE.match(sql)
    if match is None:
        return None
    return re.sub(r'["`\[\]]', '', match.group('table'))
