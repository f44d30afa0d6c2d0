"""Adapter owning a single lazily created MySQL connection."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Sequence

import pymysql
import pymysql.cursors

from .config import AppConfig, ConnectionConfig
from .connections import Connection, ConnectionFactory
from .errors import (
    ConfigurationError,
    DatabaseError,
    InvalidQueryError,
    UnknownDatabaseError,
    has_server_gone_away,
    is_invalid_syntax,
    is_unknown_database,
)
from .quoting import QuoteHandler

LOG = logging.getLogger(__name__)

ConnectionSource = Callable[[ConnectionConfig], Connection]
Bind = Sequence[Any]


class AdapterState(str, Enum):
    """Lifecycle of the connection owned by an adapter."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class Adapter:
    """Executes statements, transparently recovering from a dropped server.

    One adapter owns at most one connection and is not safe to share
    between threads. Clones start without a connection.
    """

    def __init__(
        self,
        config: ConnectionConfig | Mapping[str, Any] | None = None,
        *,
        connection_factory: ConnectionSource | None = None,
    ) -> None:
        if config is None:
            config = ConnectionConfig()
        elif not isinstance(config, ConnectionConfig):
            config = ConnectionConfig.model_validate(dict(config))
        self._config = config
        self._connection_factory = connection_factory or ConnectionFactory()
        self._connection: Connection | None = None
        self._state = AdapterState.DISCONNECTED
        self._buffered = True
        self._quoter: QuoteHandler | None = None

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> Adapter:
        """Build an adapter from the `[connection]` section of the app config."""

        if config.connection is None:
            raise ConfigurationError("Missing connection config section")
        return cls(config.connection, **kwargs)

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def connection(self) -> Connection:
        """The live connection, created on first use."""

        return self._connect()

    def get_connection(self) -> Connection:
        return self._connect()

    def set_connection(self, connection: Connection) -> Adapter:
        """Adopt an already established connection."""

        self._connection = connection
        self._state = AdapterState.CONNECTED
        return self

    @property
    def quote(self) -> QuoteHandler:
        if self._quoter is None:
            self._quoter = QuoteHandler(lambda value: self.connection.escape(value))
        return self._quoter

    def close(self) -> None:
        """Drop the current connection; the next query opens a new one."""

        self._discard()
        self._state = AdapterState.DISCONNECTED

    def reconnect(self) -> Adapter:
        """Replace the current connection with a freshly bootstrapped one."""

        self._discard()
        self._state = AdapterState.RECONNECTING
        self._connect()
        return self

    def clone(self) -> Adapter:
        """Return a disconnected copy sharing config and factory, never the handle."""

        twin = type(self)(self._config, connection_factory=self._connection_factory)
        twin._buffered = self._buffered
        return twin

    def __copy__(self) -> Adapter:
        return self.clone()

    def __deepcopy__(self, memo: dict[int, Any]) -> Adapter:
        return self.clone()

    def clone_connection(self) -> Connection:
        """Open an independent connection using this adapter's config."""

        return self._connection_factory(self._config)

    def set_database(self, name: str) -> Adapter:
        """Switch database, issuing `USE` when already connected."""

        self._config = self._config.with_database(name)
        if self._connection is not None:
            try:
                self.query(f"USE {self.quote.identifier(name)}")
            except DatabaseError as exc:
                if is_unknown_database(exc):
                    raise UnknownDatabaseError(name, code=exc.code) from exc
                raise
        return self

    def set_charset(self, charset: str) -> Adapter:
        if self._config.charset != charset:
            self._config = self._config.with_charset(charset)
            if self._connection is not None:
                self.query("SET NAMES %s", (charset,))
        return self

    def set_timezone(self, timezone: str) -> Adapter:
        if self._config.timezone != timezone:
            self._config = self._config.with_timezone(timezone)
            if self._connection is not None:
                self.query("SET time_zone = %s", (timezone,))
        return self

    def enable_buffering(self) -> Adapter:
        self._buffered = True
        return self

    def disable_buffering(self) -> Adapter:
        """Stream result sets from the server instead of loading them in memory."""

        self._buffered = False
        return self

    def is_buffered(self) -> bool:
        return self._buffered

    def ping(self) -> bool:
        """Report whether the server answers; never raises."""

        try:
            row = self.query("SELECT '1' AS alive").fetchone()
            return bool(row) and str(row["alive"]) == "1"
        except Exception:
            return False

    def last_insert_id(self) -> int:
        return self.connection.insert_id()

    def execute(self, sql: str, bind: Bind | None = None) -> int:
        """Run a statement and return the affected row count."""

        return self.query(sql, bind).rowcount

    def query(self, sql: str, bind: Bind | None = None) -> Any:
        """Run a statement with bound parameters and return its cursor."""

        return self._run(sql, bind)

    def begin_transaction(self) -> None:
        self._begin()

    def commit(self) -> None:
        try:
            self.connection.commit()
        except pymysql.MySQLError as exc:
            raise DatabaseError.from_exception(exc) from exc

    def rollback(self) -> None:
        try:
            self.connection.rollback()
        except pymysql.MySQLError as exc:
            raise DatabaseError.from_exception(exc) from exc

    @contextmanager
    def transaction(self) -> Iterator[Adapter]:
        """Commit on success, roll back when the block raises."""

        self.begin_transaction()
        try:
            yield self
        except Exception:
            self.rollback()
            raise
        self.commit()

    def _run(self, sql: str, bind: Bind | None, *, replay: bool = False) -> Any:
        try:
            cursor = self.connection.cursor(self._cursor_class())
            cursor.execute(sql, tuple(bind) if bind else None)
            return cursor
        except pymysql.MySQLError as exc:
            if is_invalid_syntax(exc):
                raise InvalidQueryError(sql, bind, exc) from exc
            if not replay and has_server_gone_away(exc):
                self._recover(exc)
                return self._run(sql, bind, replay=True)
            raise DatabaseError.from_exception(exc) from exc

    def _begin(self, *, replay: bool = False) -> None:
        try:
            self.connection.begin()
        except pymysql.MySQLError as exc:
            if not replay and has_server_gone_away(exc):
                self._recover(exc)
                self._begin(replay=True)
                return
            raise DatabaseError.from_exception(exc) from exc

    def _recover(self, exc: BaseException) -> None:
        LOG.warning(
            "Server has gone away; reconnecting once",
            extra={"host": self._config.host, "error": str(exc)},
        )
        self.reconnect()

    def _connect(self) -> Connection:
        if self._connection is None:
            if self._state is not AdapterState.RECONNECTING:
                self._state = AdapterState.CONNECTING
            try:
                self._connection = self._connection_factory(self._config)
            except Exception:
                self._state = AdapterState.DISCONNECTED
                raise
            self._state = AdapterState.CONNECTED
            LOG.debug("Connected", extra={"host": self._config.host})
        return self._connection

    def _discard(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.close()
        except Exception:  # pragma: no cover - best effort cleanup
            pass
        LOG.debug("Connection closed", extra={"host": self._config.host})

    def _cursor_class(self) -> type[pymysql.cursors.Cursor]:
        if self._buffered:
            return pymysql.cursors.DictCursor
        return pymysql.cursors.SSDictCursor


__all__ = ["Adapter", "AdapterState", "Bind"]
