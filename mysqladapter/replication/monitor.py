"""Replication lag sampling and shared history bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ..adapter import Adapter
from ..config import ReplicationConfig
from ..errors import ConfigurationError, ReplicationStatusError
from .storage import LagStore, create_store

LOG = logging.getLogger(__name__)

MAX_HISTORY = 30

DEFAULT_STATUS_QUERY = "SHOW SLAVE STATUS"
# `SHOW REPLICA STATUS` (MySQL 8.0.22+) renames the column.
LAG_FIELDS = ("Seconds_Behind_Master", "Seconds_Behind_Source")


@dataclass(frozen=True, slots=True)
class LagSnapshot:
    """Stored lag state for one master."""

    host: str
    seconds_behind: int
    history: tuple[int, ...]
    sample: int | None = None


class ReplicationMonitor:
    """Records the worst replica lag for a master into the shared store.

    Meant to be invoked periodically by a single scheduler per master. The
    read-append-write against the store is not atomic, so two monitors for
    the same master may lose each other's samples.
    """

    def __init__(
        self,
        master: Adapter,
        replicas: Sequence[Adapter],
        store: LagStore,
        *,
        status_query: str = DEFAULT_STATUS_QUERY,
    ) -> None:
        if not replicas:
            raise ConfigurationError("Missing required list of replicas.")
        for replica in replicas:
            if not isinstance(replica, Adapter):
                raise ConfigurationError("Specified replica is not an adapter.")
        self._master = master
        self._replicas = tuple(replicas)
        self._store = store
        self._status_query = status_query
        self._host = master.config.host or ""

    @classmethod
    def from_config(cls, config: ReplicationConfig, store: LagStore | None = None) -> ReplicationMonitor:
        return cls(
            Adapter(config.master),
            [Adapter(replica) for replica in config.replicas],
            store or create_store(config.storage),
            status_query=config.status_query,
        )

    @property
    def host(self) -> str:
        return self._host

    @property
    def store(self) -> LagStore:
        return self._store

    def monitor(self) -> LagSnapshot:
        """Sample every replica once and persist the new average and history."""

        sample = max(self.fetch_lag(replica) for replica in self._replicas)

        history = self._store.get_history(self._host)
        history.append(sample)
        while len(history) > MAX_HISTORY:
            history.pop(0)

        average = _ceil_average(history)
        self._store.set_state(self._host, average, history)
        LOG.debug(
            "Recorded replication lag",
            extra={"host": self._host, "sample": sample, "average": average, "history": len(history)},
        )
        return LagSnapshot(host=self._host, seconds_behind=average, history=tuple(history), sample=sample)

    def stats(self) -> LagSnapshot:
        """Current stored state for the master, without sampling."""

        return LagSnapshot(
            host=self._host,
            seconds_behind=self._store.get_seconds_behind(self._host),
            history=tuple(self._store.get_history(self._host)),
        )

    def fetch_status(self, replica: Adapter) -> Mapping[str, Any]:
        """Fetch the replica status row, validating the lag column."""

        status = replica.query(self._status_query).fetchone()
        if not isinstance(status, Mapping) or _lag_value(status) is None:
            raise _invalid_status(replica)
        return status

    def fetch_lag(self, replica: Adapter) -> int:
        value = _lag_value(self.fetch_status(replica))
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise _invalid_status(replica) from exc


def _invalid_status(replica: Adapter) -> ReplicationStatusError:
    LOG.warning("Invalid replica status", extra={"replica": replica.config.host})
    return ReplicationStatusError(replica.config.host, "Seconds_Behind_Master is not a valid value")


def _lag_value(status: Mapping[str, Any]) -> Any:
    for field in LAG_FIELDS:
        if status.get(field) is not None:
            return status[field]
    return None


def _ceil_average(history: Sequence[int]) -> int:
    """Ceiling of the mean; over-throttling is preferred to under-throttling."""

    if not history:
        return 0
    return -(-sum(history) // len(history))


__all__ = [
    "DEFAULT_STATUS_QUERY",
    "LAG_FIELDS",
    "LagSnapshot",
    "MAX_HISTORY",
    "ReplicationMonitor",
]
