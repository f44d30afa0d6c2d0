"""Replication lag monitoring and write throttling."""

from __future__ import annotations

from .monitor import LAG_FIELDS, MAX_HISTORY, LagSnapshot, ReplicationMonitor
from .storage import LagStore, MemoryLagStore, RedisLagStore, create_store
from .throttle import ReplicationThrottle

__all__ = [
    "LAG_FIELDS",
    "LagSnapshot",
    "LagStore",
    "MAX_HISTORY",
    "MemoryLagStore",
    "RedisLagStore",
    "ReplicationMonitor",
    "ReplicationThrottle",
    "create_store",
]
