"""Tests for the replication lag stores."""

from __future__ import annotations

from typing import Any

import pytest

from mysqladapter.config import StorageConfig
from mysqladapter.replication import storage as storage_module
from mysqladapter.replication.storage import LagStore, MemoryLagStore, RedisLagStore, create_store


class _FakePipeline:
    def __init__(self, client: "_FakeRedis", transaction: bool) -> None:
        self._client = client
        self.transaction = transaction
        self.ops: list[tuple[str, Any]] = []
        self.executed = False

    def set(self, key: str, value: Any) -> "_FakePipeline":
        self.ops.append((key, value))
        return self

    def execute(self) -> list[bool]:
        for key, value in self.ops:
            self._client.set(key, value)
        self.executed = True
        return [True] * len(self.ops)


class _FakeRedis:
    """Stores values as bytes, like redis-py without decode_responses."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.pipelines: list[_FakePipeline] = []

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> bool:
        self.data[key] = value if isinstance(value, bytes) else str(value).encode()
        return True

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        pipe = _FakePipeline(self, transaction)
        self.pipelines.append(pipe)
        return pipe


def test_memory_store_defaults_to_empty_state() -> None:
    store = MemoryLagStore()

    assert store.get_seconds_behind("db") == 0
    assert store.get_history("db") == []


def test_memory_store_round_trips_state_per_host() -> None:
    store = MemoryLagStore()

    store.set_state("db-1", 13, [20, 5])
    store.set_seconds_behind("db-2", 4)

    assert store.get_seconds_behind("db-1") == 13
    assert store.get_history("db-1") == [20, 5]
    assert store.get_seconds_behind("db-2") == 4
    assert store.get_history("db-2") == []


def test_memory_store_history_is_a_copy() -> None:
    store = MemoryLagStore()
    store.set_history("db", [1, 2])

    store.get_history("db").append(3)

    assert store.get_history("db") == [1, 2]


def test_stores_satisfy_protocol() -> None:
    assert isinstance(MemoryLagStore(), LagStore)
    assert isinstance(RedisLagStore(_FakeRedis()), LagStore)


def test_redis_store_uses_prefixed_keys() -> None:
    client = _FakeRedis()
    store = RedisLagStore(client)

    store.set_seconds_behind("db-1", 12)
    store.set_history("db-1", [10, 14])

    assert client.data["DbReplication:db-1:SecondsBehind"] == b"12"
    assert client.data["DbReplication:db-1:History"] == b"[10, 14]"
    assert store.get_seconds_behind("db-1") == 12
    assert store.get_history("db-1") == [10, 14]


def test_redis_store_missing_keys() -> None:
    store = RedisLagStore(_FakeRedis(), prefix="Lag")

    assert store.key("db") == "Lag:db"
    assert store.get_seconds_behind("db") == 0
    assert store.get_history("db") == []


def test_redis_store_writes_state_in_one_transaction() -> None:
    client = _FakeRedis()
    store = RedisLagStore(client)

    store.set_state("db-1", 13, [20, 5])

    assert len(client.pipelines) == 1
    pipe = client.pipelines[0]
    assert pipe.transaction is True
    assert pipe.executed is True
    assert [key for key, _ in pipe.ops] == ["DbReplication:db-1:SecondsBehind", "DbReplication:db-1:History"]
    assert store.get_seconds_behind("db-1") == 13
    assert store.get_history("db-1") == [20, 5]


def test_redis_store_from_url(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeRedis()
    urls: list[str] = []

    def _from_url(url: str, **kwargs: Any) -> _FakeRedis:
        urls.append(url)
        return client

    monkeypatch.setattr(storage_module.redis.Redis, "from_url", _from_url)

    store = RedisLagStore.from_url("redis://cache:6379/1", prefix="Lag")
    store.set_seconds_behind("db", 3)

    assert urls == ["redis://cache:6379/1"]
    assert client.data["Lag:db:SecondsBehind"] == b"3"


def test_create_store_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(storage_module.redis.Redis, "from_url", lambda url, **kwargs: _FakeRedis())

    assert isinstance(create_store(StorageConfig()), MemoryLagStore)
    assert isinstance(create_store(StorageConfig(backend="redis")), RedisLagStore)
