"""Write-path throttle driven by the shared replication lag."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable

from ..adapter import Adapter
from ..config import ReplicationConfig
from .storage import LagStore, create_store

LOG = logging.getLogger(__name__)

# Delay curve: lag ** 5.2 / 100 ms, scaled by weighting percent. Under a
# millisecond up to 2s of lag, ~13ms at 4s, the 1s ceiling near 10s.
LAG_EXPONENT = 5.2
LAG_DIVISOR = 100
DEFAULT_WEIGHTING = 100
DEFAULT_MAX_SLEEP_MS = 1000
DEFAULT_UPDATE_INTERVAL = 1.0


class ReplicationThrottle:
    """Sleeps in proportion to the average lag recorded for a master.

    The stored average is cached locally and re-read at most once per
    `update_interval` seconds.
    """

    def __init__(
        self,
        master: Adapter,
        store: LagStore,
        *,
        weighting: int = DEFAULT_WEIGHTING,
        max_sleep_ms: int = DEFAULT_MAX_SLEEP_MS,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._host = master.config.host or ""
        self._store = store
        self.weighting = weighting
        self.max_sleep_ms = max_sleep_ms
        self._update_interval = update_interval
        self._clock = clock
        self._sleep = sleep
        self._lag = 0
        self._lag_read_at: float | None = None

    @classmethod
    def from_config(cls, config: ReplicationConfig, store: LagStore | None = None, **kwargs: Any) -> ReplicationThrottle:
        return cls(
            Adapter(config.master),
            store or create_store(config.storage),
            weighting=config.throttle.weighting,
            max_sleep_ms=config.throttle.max_sleep_ms,
            update_interval=config.throttle.update_interval,
            **kwargs,
        )

    @property
    def weighting(self) -> int:
        return self._weighting

    @weighting.setter
    def weighting(self, value: int) -> None:
        self._weighting = int(value)

    @property
    def max_sleep_ms(self) -> int:
        """Upper bound on a single throttle sleep."""

        return self._max_sleep_ms

    @max_sleep_ms.setter
    def max_sleep_ms(self, value: int) -> None:
        self._max_sleep_ms = int(value)

    @property
    def lag(self) -> int:
        """Last average lag read from the store."""

        return self._lag

    def throttle(self) -> int:
        """Sleep for the current delay and return it in milliseconds."""

        self._refresh()
        delay = self.delay_ms(self._lag)
        if delay > 0:
            LOG.debug("Throttling writes", extra={"host": self._host, "lag": self._lag, "sleep_ms": delay})
            self._sleep(delay / 1000)
        return delay

    def delay_ms(self, lag: int) -> int:
        """Milliseconds to sleep for a given lag, clamped to [0, max_sleep_ms]."""

        lag = max(lag, 0)
        try:
            curve = (lag**LAG_EXPONENT) / LAG_DIVISOR * (self._weighting / 100)
        except OverflowError:
            curve = math.inf
        return max(0, math.floor(min(curve, self._max_sleep_ms)))

    def _refresh(self) -> None:
        now = self._clock()
        if self._lag_read_at is not None and now - self._lag_read_at <= self._update_interval:
            return
        self._lag = int(self._store.get_seconds_behind(self._host))
        self._lag_read_at = now
        LOG.debug("Refreshed replication lag", extra={"host": self._host, "lag": self._lag})


__all__ = [
    "DEFAULT_MAX_SLEEP_MS",
    "DEFAULT_UPDATE_INTERVAL",
    "DEFAULT_WEIGHTING",
    "LAG_DIVISOR",
    "LAG_EXPONENT",
    "ReplicationThrottle",
]
