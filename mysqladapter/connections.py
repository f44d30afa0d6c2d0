"""Connection bootstrap with bounded retry and error classification."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol, runtime_checkable

import pymysql

from .config import ConnectionConfig
from .errors import DatabaseConnectionError, UnknownDatabaseError, is_unknown_database

LOG = logging.getLogger(__name__)

# Backoff after attempt n is 2**n * 50ms (100ms, 200ms, 400ms, ...). It is
# deterministic and uncapped; with the retry limit of 10 the last wait is ~51s.
BACKOFF_BASE = 2
BACKOFF_STEP_MS = 50

SESSION_STATEMENT = "SET NAMES %s, time_zone = %s"


@runtime_checkable
class Connection(Protocol):
    """Subset of the PyMySQL connection API the adapter relies on."""

    def cursor(self, cursor: Any = None) -> Any: ...

    def escape(self, obj: Any, mapping: Any = None) -> str: ...

    def insert_id(self) -> int: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


Connector = Callable[..., Connection]


def backoff_ms(attempt: int) -> int:
    """Milliseconds to wait after the given 1-based attempt failed."""

    return (BACKOFF_BASE**attempt) * BACKOFF_STEP_MS


class ConnectionFactory:
    """Creates authenticated, session-configured connections."""

    def __init__(
        self,
        connector: Connector | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connector = connector or pymysql.connect
        self._sleep = sleep

    def __call__(self, config: ConnectionConfig) -> Connection:
        target = config.dsn
        options = config.driver_options()
        max_attempts = config.max_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._open(config, options)
            except pymysql.MySQLError as exc:
                if is_unknown_database(exc):
                    raise UnknownDatabaseError(config.database) from exc
                if attempt >= max_attempts:
                    LOG.error(
                        "Connection attempts exhausted",
                        extra={"target": target, "attempts": attempt, "error": str(exc)},
                    )
                    raise DatabaseConnectionError.from_exception(exc) from exc
                delay = backoff_ms(attempt)
                LOG.warning(
                    "Connection attempt failed; retrying",
                    extra={
                        "target": target,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "delay_ms": delay,
                        "error": str(exc),
                    },
                )
                self._sleep(delay / 1000)

    def create(self, config: ConnectionConfig) -> Connection:
        """Open a single raw connection without retry or session setup."""

        return self._connector(**config.driver_options())

    def _open(self, config: ConnectionConfig, options: dict[str, Any]) -> Connection:
        connection = self._connector(**options)
        try:
            with connection.cursor() as cursor:
                cursor.execute(SESSION_STATEMENT, (config.charset, config.timezone))
        except Exception:
            try:
                connection.close()
            except Exception:  # pragma: no cover - best effort cleanup
                pass
            raise
        return connection


__all__ = [
    "BACKOFF_BASE",
    "BACKOFF_STEP_MS",
    "Connection",
    "ConnectionFactory",
    "Connector",
    "SESSION_STATEMENT",
    "backoff_ms",
]
