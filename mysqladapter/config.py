"""Connection and replication configuration models."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import tomllib

import pymysql.cursors
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "mysqladapter" / "config.toml"

DEFAULT_CHARSET = "utf8mb4"
DEFAULT_TIMEZONE = "+0:00"
DEFAULT_TIMEOUT = 2
MAX_TIMEOUT = 120
DEFAULT_RETRY_COUNT = 0
MAX_RETRY_COUNT = 10


def _bounded_int(value: object, minimum: int, maximum: int, default: int) -> int:
    """Coerce to an int within [minimum, maximum]; unusable values give the default."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return default
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        return default
    return max(minimum, min(maximum, value))


class ConnectionConfig(BaseModel):
    """Immutable connection parameters for a single MySQL server."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    host: str | None = None
    port: int | None = None
    username: str = ""
    password: str = Field(default="", repr=False)
    database: str = Field(default="", alias="dbname")
    charset: str = DEFAULT_CHARSET
    timezone: str = DEFAULT_TIMEZONE
    timeout: int = DEFAULT_TIMEOUT
    retry_count: int = Field(default=DEFAULT_RETRY_COUNT, alias="retryCount")
    options: dict[str, Any] = Field(default_factory=dict, alias="attributes")

    @field_validator("timeout", mode="before")
    @classmethod
    def _clamp_timeout(cls, value: object) -> int:
        return _bounded_int(value, 0, MAX_TIMEOUT, DEFAULT_TIMEOUT)

    @field_validator("retry_count", mode="before")
    @classmethod
    def _clamp_retry_count(cls, value: object) -> int:
        return _bounded_int(value, 0, MAX_RETRY_COUNT, DEFAULT_RETRY_COUNT)

    @property
    def max_attempts(self) -> int:
        """Total connection attempts made during bootstrap."""

        return self.retry_count + 1

    @property
    def dsn(self) -> str:
        """Driver-neutral description of the target, used for logging."""

        host = self._require_host()
        dsn = f"mysql:host={host}"
        if self.port is not None:
            dsn += f";port={self.port}"
        if self.database:
            dsn += f";dbname={self.database}"
        return dsn

    def driver_options(self) -> dict[str, Any]:
        """Keyword arguments for `pymysql.connect`; explicit options win."""

        kwargs: dict[str, Any] = {
            "host": self._require_host(),
            "user": self.username,
            "password": self.password,
            "charset": self.charset,
            # PyMySQL rejects a zero timeout; zero means "wait indefinitely".
            "connect_timeout": self.timeout or None,
            "autocommit": True,
            "cursorclass": pymysql.cursors.DictCursor,
        }
        if self.port is not None:
            kwargs["port"] = self.port
        if self.database:
            kwargs["database"] = self.database
        return {**kwargs, **self.options}

    def with_database(self, name: str) -> ConnectionConfig:
        """Return a copy targeting another database."""

        return self.model_copy(update={"database": name})

    def with_charset(self, charset: str) -> ConnectionConfig:
        return self.model_copy(update={"charset": charset})

    def with_timezone(self, timezone: str) -> ConnectionConfig:
        return self.model_copy(update={"timezone": timezone})

    def _require_host(self) -> str:
        if not self.host:
            raise ConfigurationError("Missing host config param")
        return self.host


class ThrottleConfig(BaseModel):
    """Tuning knobs for the replication throttle."""

    weighting: int = 100
    max_sleep_ms: int = 1000
    update_interval: float = 1.0


class StorageConfig(BaseModel):
    """Shared lag store selection."""

    backend: Literal["memory", "redis"] = "memory"
    url: str = "redis://localhost:6379/0"
    prefix: str = "DbReplication"


class ReplicationConfig(BaseModel):
    """Master/replica topology monitored for replication lag."""

    master: ConnectionConfig
    replicas: list[ConnectionConfig] = Field(default_factory=list)
    status_query: str = "SHOW SLAVE STATUS"
    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


class AppConfig(BaseModel):
    """Shape of the configuration file."""

    connection: ConnectionConfig | None = None
    replication: ReplicationConfig | None = None


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    target = path or CONFIG_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable config file", extra={"path": str(target), "error": str(exc)})
        return AppConfig()

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {target}: {exc}") from exc


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConnectionConfig",
    "ReplicationConfig",
    "StorageConfig",
    "ThrottleConfig",
    "load_config",
]
