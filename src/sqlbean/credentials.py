"""
Credentials for a pooled connection target.
"""
from dataclasses import dataclass
from typing import Self

__all__ = [
    'Credentials',
    'CredentialsBuilder',
    'DEFAULT_PORT',
]

DEFAULT_PORT = 3306


def _require_text(value: str | None, field: str) -> str:
    if value is None:
        raise TypeError(f'{field} cannot be None.')
    if not isinstance(value, str):
        raise TypeError(f'{field} must be a string, got {type(value).__name__}.')
    if not value:
        raise ValueError(f'{field} cannot be empty.')
    return value


@dataclass(frozen=True)
class Credentials:
    """Connection target for a data source that supports connection pooling.

    Instances are immutable and are only created through
    ``Credentials.builder()``. Several targets can be used at once by
    building several Credentials.
    """
    hostname: str
    username: str
    pool_name: str
    port: int = DEFAULT_PORT
    password: str | None = None
    schema: str | None = None

    @staticmethod
    def builder() -> 'CredentialsBuilder':
        """Create a new builder for Credentials."""
        return CredentialsBuilder()

    def __repr__(self) -> str:
        return (f'Credentials(hostname={self.hostname!r}, port={self.port}, '
                f'username={self.username!r}, schema={self.schema!r}, '
                f'pool_name={self.pool_name!r})')


class CredentialsBuilder:
    """Builder for Credentials.

    ``host``, ``user`` and ``pool`` are required and must be non-empty;
    the port defaults to 3306, password and schema to None.
    """

    def __init__(self) -> None:
        self._hostname: str | None = None
        self._port = DEFAULT_PORT
        self._username: str | None = None
        self._password: str | None = None
        self._schema: str | None = None
        self._pool_name: str | None = None

    def host(self, hostname: str) -> Self:
        self._hostname = _require_text(hostname, 'Hostname')
        return self

    def port(self, port: int) -> Self:
        if isinstance(port, bool) or not isinstance(port, int):
            raise TypeError(f'Port must be an int, got {type(port).__name__}.')
        self._port = port
        return self

    def user(self, username: str) -> Self:
        self._username = _require_text(username, 'Username')
        return self

    def password(self, password: str | None) -> Self:
        self._password = password
        return self

    def schema(self, schema: str | None) -> Self:
        """Set the initial schema. The schema is not created if missing."""
        self._schema = schema
        return self

    def pool(self, pool_name: str) -> Self:
        self._pool_name = _require_text(pool_name, 'Pool name')
        return self

    def build(self) -> Credentials:
        """Build the Credentials.

        Raises
            ValueError: If host, user or pool was never set
        """
        missing = [name for name, value in (('host', self._hostname),
                                            ('user', self._username),
                                            ('pool', self._pool_name)) if value is None]
        if missing:
            raise ValueError(f"Missing required credentials: {', '.join(missing)}")
        return Credentials(
            hostname=self._hostname,
            username=self._username,
            pool_name=self._pool_name,
            port=self._port,
            password=self._password,
            schema=self._schema,
        )
