"""Error taxonomy and driver error classification."""

from __future__ import annotations

import re
from typing import Sequence

# Server error codes, see the MySQL server error reference.
ER_BAD_DB_ERROR = 1049
# SQLSTATE class "syntax error or access violation"; some drivers and proxies
# report the unknown database condition under it when raised by `USE <db>`.
SQLSTATE_SYNTAX_OR_ACCESS = 42000

SERVER_GONE_AWAY = "MySQL server has gone away"
INVALID_SYNTAX = "You have an error in your SQL syntax"

_UNKNOWN_DATABASE_PATTERN = re.compile(
    r"SQLSTATE\[42000\].*\s1049\s|Unknown database '[^']*'",
    re.IGNORECASE,
)


class DatabaseError(RuntimeError):
    """Base error carrying the driver code and message."""

    def __init__(self, message: str, code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    @classmethod
    def from_exception(cls, exc: BaseException) -> DatabaseError:
        """Wrap a driver error, keeping its code and message."""

        if isinstance(exc, cls):
            return exc
        code, message = error_details(exc)
        return cls(message, code)


class ConfigurationError(DatabaseError):
    """Raised when required configuration is missing or invalid."""


class DatabaseConnectionError(DatabaseError):
    """Raised when a connection cannot be established."""


class UnknownDatabaseError(DatabaseError):
    """Raised when the selected database does not exist on the server."""

    def __init__(self, database: str, message: str | None = None, code: int = ER_BAD_DB_ERROR) -> None:
        super().__init__(message or f"Unknown database '{database}'.", code)
        self.database = database


class InvalidQueryError(DatabaseError):
    """Raised when the server rejects a statement as malformed.

    The message embeds the SQL text and the bound values, so it may contain
    sensitive data; log it accordingly.
    """

    def __init__(self, query: str, bind: Sequence[object] | None = None, previous: BaseException | None = None) -> None:
        self.query = query
        self.bind = tuple(bind or ())
        message = f"{INVALID_SYNTAX}."
        code = 0
        if previous is not None:
            code, message = error_details(previous)
        super().__init__(f"{message} SQL: {query} Bind: {self.bind!r}", code)


class ReplicationStatusError(DatabaseError):
    """Raised when a replica status record cannot be interpreted."""

    def __init__(self, host: str | None, message: str) -> None:
        super().__init__(f"{message} (replica '{host}')")
        self.host = host


def error_details(exc: BaseException) -> tuple[int, str]:
    """Return the numeric code and message of a driver or wrapped error."""

    if isinstance(exc, DatabaseError):
        return exc.code, exc.message
    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return args[0], str(args[1])
    if len(args) == 1 and isinstance(args[0], int):
        return args[0], ""
    return 0, str(exc)


def is_unknown_database(exc: BaseException) -> bool:
    """Detect the "unknown database" condition.

    The numeric code is reliable. The SQLSTATE 42000 path relies on the
    message text and is a best-effort fallback.
    """

    code, message = error_details(exc)
    if code == ER_BAD_DB_ERROR:
        return True
    return code == SQLSTATE_SYNTAX_OR_ACCESS and _UNKNOWN_DATABASE_PATTERN.search(message) is not None


def has_server_gone_away(exc: BaseException) -> bool:
    """Detect a mid-session disconnect; message based, no stable code exists."""

    _, message = error_details(exc)
    return SERVER_GONE_AWAY.lower() in message.lower()


def is_invalid_syntax(exc: BaseException) -> bool:
    """Detect a server side SQL syntax error."""

    _, message = error_details(exc)
    return INVALID_SYNTAX.lower() in message.lower()


__all__ = [
    "ConfigurationError",
    "DatabaseConnectionError",
    "DatabaseError",
    "ER_BAD_DB_ERROR",
    "InvalidQueryError",
    "ReplicationStatusError",
    "SQLSTATE_SYNTAX_OR_ACCESS",
    "UnknownDatabaseError",
    "error_details",
    "has_server_gone_away",
    "is_invalid_syntax",
    "is_unknown_database",
]
