"""
Shard metrics store.

Append-only persistence for per-shard operational metric snapshots, with
"latest per shard" and "historical window" reads over PostgreSQL (asyncpg)
or a local SQLite file.
"""

from shard_metrics.errors import (
    InvalidArgumentError,
    MetricsStoreError,
    PersistenceError,
    RetrievalError,
)
from shard_metrics.models import ShardMetricSnapshot
from shard_metrics.pool import ConnectionPool, SqlitePool, create_pool
from shard_metrics.store import MetricsStore

__version__ = "0.1.0"

__all__ = [
    "ConnectionPool",
    "InvalidArgumentError",
    "MetricsStore",
    "MetricsStoreError",
    "PersistenceError",
    "RetrievalError",
    "ShardMetricSnapshot",
    "SqlitePool",
    "create_pool",
    "__version__",
]
