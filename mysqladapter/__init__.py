"""MySQL adapter with resilient execution and replication-aware throttling."""

from __future__ import annotations

from .adapter import Adapter, AdapterState
from .config import AppConfig, ConnectionConfig, ReplicationConfig, load_config
from .connections import ConnectionFactory
from .errors import (
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    InvalidQueryError,
    ReplicationStatusError,
    UnknownDatabaseError,
)
from .quoting import QuoteHandler

__version__ = "0.1.0"

__all__ = [
    "Adapter",
    "AdapterState",
    "AppConfig",
    "ConfigurationError",
    "ConnectionConfig",
    "ConnectionFactory",
    "DatabaseConnectionError",
    "DatabaseError",
    "InvalidQueryError",
    "QuoteHandler",
    "ReplicationConfig",
    "ReplicationStatusError",
    "UnknownDatabaseError",
    "__version__",
    "load_config",
]
