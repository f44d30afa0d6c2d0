"""Shared storage for replication lag readings."""

from __future__ import annotations

import json
from typing import Any, Protocol, Sequence, runtime_checkable

import redis

from ..config import StorageConfig

DEFAULT_PREFIX = "DbReplication"


@runtime_checkable
class LagStore(Protocol):
    """Key-value capability shared by the monitor and every throttle."""

    def get_seconds_behind(self, host: str) -> int:
        """Return the stored average lag for the master, 0 if unknown."""

    def set_seconds_behind(self, host: str, value: int) -> None: ...

    def get_history(self, host: str) -> list[int]:
        """Return the stored lag samples, oldest first."""

    def set_history(self, host: str, values: Sequence[int]) -> None: ...

    def set_state(self, host: str, seconds_behind: int, history: Sequence[int]) -> None:
        """Persist the average and the history together."""


class MemoryLagStore:
    """Process-local store; useful for tests and single process setups."""

    def __init__(self) -> None:
        self._seconds_behind: dict[str, int] = {}
        self._history: dict[str, list[int]] = {}

    def get_seconds_behind(self, host: str) -> int:
        return self._seconds_behind.get(host, 0)

    def set_seconds_behind(self, host: str, value: int) -> None:
        self._seconds_behind[host] = int(value)

    def get_history(self, host: str) -> list[int]:
        return list(self._history.get(host, ()))

    def set_history(self, host: str, values: Sequence[int]) -> None:
        self._history[host] = [int(value) for value in values]

    def set_state(self, host: str, seconds_behind: int, history: Sequence[int]) -> None:
        self.set_seconds_behind(host, seconds_behind)
        self.set_history(host, history)


class RedisLagStore:
    """Redis backed store shared across processes and hosts."""

    def __init__(self, client: Any, *, prefix: str = DEFAULT_PREFIX) -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, *, prefix: str = DEFAULT_PREFIX) -> RedisLagStore:
        return cls(redis.Redis.from_url(url), prefix=prefix)

    def key(self, host: str) -> str:
        return f"{self._prefix}:{host}"

    def get_seconds_behind(self, host: str) -> int:
        raw = self._client.get(self._seconds_key(host))
        if raw is None:
            return 0
        return int(raw)

    def set_seconds_behind(self, host: str, value: int) -> None:
        self._client.set(self._seconds_key(host), int(value))

    def get_history(self, host: str) -> list[int]:
        raw = self._client.get(self._history_key(host))
        if raw is None:
            return []
        return [int(value) for value in json.loads(raw)]

    def set_history(self, host: str, values: Sequence[int]) -> None:
        self._client.set(self._history_key(host), _encode_history(values))

    def set_state(self, host: str, seconds_behind: int, history: Sequence[int]) -> None:
        pipe = self._client.pipeline(transaction=True)
        pipe.set(self._seconds_key(host), int(seconds_behind))
        pipe.set(self._history_key(host), _encode_history(history))
        pipe.execute()

    def _seconds_key(self, host: str) -> str:
        return f"{self.key(host)}:SecondsBehind"

    def _history_key(self, host: str) -> str:
        return f"{self.key(host)}:History"


def _encode_history(values: Sequence[int]) -> str:
    return json.dumps([int(value) for value in values])


def create_store(config: StorageConfig) -> LagStore:
    """Build the store selected in configuration."""

    if config.backend == "redis":
        return RedisLagStore.from_url(config.url, prefix=config.prefix)
    return MemoryLagStore()


__all__ = [
    "DEFAULT_PREFIX",
    "LagStore",
    "MemoryLagStore",
    "RedisLagStore",
    "create_store",
]
