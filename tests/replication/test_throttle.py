"""Tests for the replication throttle."""

from __future__ import annotations

import pytest

from mysqladapter.adapter import Adapter
from mysqladapter.config import ConnectionConfig, ReplicationConfig, ThrottleConfig
from mysqladapter.replication import MemoryLagStore, ReplicationMonitor, ReplicationThrottle


class _Clock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _CountingStore(MemoryLagStore):
    def __init__(self) -> None:
        super().__init__()
        self.reads = 0

    def get_seconds_behind(self, host: str) -> int:
        self.reads += 1
        return super().get_seconds_behind(host)


class _BrokenStore(MemoryLagStore):
    def get_seconds_behind(self, host: str) -> int:
        raise ConnectionRefusedError("store unavailable")


def _throttle(lag: int, **kwargs: object) -> tuple[ReplicationThrottle, _CountingStore, list[float], _Clock]:
    store = _CountingStore()
    store.set_seconds_behind("db-master", lag)
    sleeps: list[float] = []
    clock = _Clock()
    throttle = ReplicationThrottle(
        Adapter({"host": "db-master"}),
        store,
        clock=clock,
        sleep=sleeps.append,
        **kwargs,  # type: ignore[arg-type]
    )
    return throttle, store, sleeps, clock


def test_zero_lag_does_not_sleep() -> None:
    throttle, _, sleeps, _ = _throttle(0)

    assert throttle.throttle() == 0
    assert sleeps == []


def test_sub_millisecond_delay_floors_to_zero() -> None:
    throttle, _, sleeps, _ = _throttle(2)

    assert throttle.throttle() == 0
    assert sleeps == []


def test_delay_follows_power_curve() -> None:
    throttle, _, sleeps, _ = _throttle(5)

    assert throttle.throttle() == 43
    assert sleeps == [0.043]


def test_weighting_scales_delay() -> None:
    throttle, _, _, _ = _throttle(5, weighting=50)

    assert throttle.delay_ms(5) == 21


def test_large_lag_is_clamped_to_max_sleep() -> None:
    throttle, _, sleeps, _ = _throttle(100)

    assert throttle.throttle() == 1000
    assert sleeps == [1.0]


def test_custom_max_sleep() -> None:
    throttle, _, sleeps, _ = _throttle(100, max_sleep_ms=250)

    assert throttle.throttle() == 250
    assert sleeps == [0.25]


def test_extreme_and_negative_lag_stay_in_bounds() -> None:
    throttle, _, _, _ = _throttle(0)

    assert throttle.delay_ms(10**400) == 1000
    assert throttle.delay_ms(-5) == 0


def test_cached_lag_avoids_second_store_read() -> None:
    throttle, store, _, clock = _throttle(5)

    throttle.throttle()
    clock.now += 0.5
    throttle.throttle()

    assert store.reads == 1


def test_cache_refreshes_after_update_interval() -> None:
    throttle, store, sleeps, clock = _throttle(0)

    throttle.throttle()
    store.set_seconds_behind("db-master", 100)
    clock.now += 1.0
    assert throttle.throttle() == 0
    clock.now += 0.5
    assert throttle.throttle() == 1000

    assert store.reads == 2
    assert throttle.lag == 100
    assert sleeps == [1.0]


def test_custom_update_interval() -> None:
    throttle, store, _, clock = _throttle(1, update_interval=10.0)

    throttle.throttle()
    clock.now += 9.0
    throttle.throttle()
    clock.now += 2.0
    throttle.throttle()

    assert store.reads == 2


def test_settings_are_cast_to_int() -> None:
    throttle, _, _, _ = _throttle(0)

    throttle.weighting = "50"  # type: ignore[assignment]
    throttle.max_sleep_ms = 250.7  # type: ignore[assignment]

    assert throttle.weighting == 50
    assert throttle.max_sleep_ms == 250


def test_store_errors_propagate() -> None:
    throttle = ReplicationThrottle(Adapter({"host": "db-master"}), _BrokenStore(), sleep=lambda _: None)

    with pytest.raises(ConnectionRefusedError):
        throttle.throttle()


def test_from_config_applies_throttle_settings() -> None:
    config = ReplicationConfig(
        master=ConnectionConfig(host="db-master"),
        replicas=[ConnectionConfig(host="r1")],
        throttle=ThrottleConfig(weighting=25, max_sleep_ms=400, update_interval=2.0),
    )
    store = MemoryLagStore()
    store.set_seconds_behind("db-master", 100)
    sleeps: list[float] = []

    throttle = ReplicationThrottle.from_config(config, store, sleep=sleeps.append)

    assert throttle.weighting == 25
    assert throttle.max_sleep_ms == 400
    assert throttle.throttle() == 400


class _LagConnection:
    def __init__(self, lag: int) -> None:
        self.lag = lag

    def cursor(self, cursor: object = None) -> "_LagConnection":
        return self

    def execute(self, sql: str, args: object = None) -> int:
        return 1

    def fetchone(self) -> dict[str, int]:
        return {"Seconds_Behind_Master": self.lag}

    def close(self) -> None:
        return None


def test_throttle_reacts_to_monitored_lag() -> None:
    store = MemoryLagStore()
    master = Adapter({"host": "db-master"})
    replica = Adapter({"host": "r1"}).set_connection(_LagConnection(100))
    sleeps: list[float] = []
    monitor = ReplicationMonitor(master, [replica], store)
    throttle = ReplicationThrottle(master, store, sleep=sleeps.append)

    monitor.monitor()

    assert throttle.throttle() == 1000
    assert sleeps == [1.0]
