"""
Relational persistence for per-shard metric snapshots.

MetricsStore appends snapshots to the ``shard_metrics`` table and reads them
back either as the latest snapshot per shard or as a trailing time window
for one shard. It owns no schedule and keeps no state beyond the pool
handle; every operation is one statement against the injected pool.

Every failure is logged once and raised as PersistenceError (writes, schema
setup) or RetrievalError (reads) with the driver exception as ``__cause__``.
Nothing is retried here.

Schema (PostgreSQL):
    CREATE TABLE shard_metrics (
        shard_id INTEGER,
        timestamp TIMESTAMPTZ,
        row_count BIGINT,
        query_count BIGINT,
        error_count BIGINT,
        avg_response_time DOUBLE PRECISION,
        active_connections INTEGER,
        load_percentage DOUBLE PRECISION
    );
    CREATE INDEX idx_shard_metrics_shard_timestamp
        ON shard_metrics (shard_id, timestamp DESC);
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from types import TracebackType
from typing import TYPE_CHECKING

from shard_metrics.errors import PersistenceError, RetrievalError
from shard_metrics.logging import get_logger
from shard_metrics.models import COLUMNS, ShardMetricSnapshot
from shard_metrics.pool import ConnectionPool, SqlitePool, create_pool

if TYPE_CHECKING:
    from shard_metrics.config import DatabaseConfig

logger = get_logger(__name__)

# Default look-back window for historical reads, in hours
DEFAULT_HISTORY_HOURS = 24

TABLE_NAME = "shard_metrics"

# =============================================================================
# SQL
# =============================================================================

SCHEMA_SQL = {
    "postgres": f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    shard_id INTEGER NOT NULL,
    timestamp TIMESTAMPTZ NOT NULL,
    row_count BIGINT NOT NULL,
    query_count BIGINT NOT NULL,
    error_count BIGINT NOT NULL,
    avg_response_time DOUBLE PRECISION NOT NULL,
    active_connections INTEGER NOT NULL,
    load_percentage DOUBLE PRECISION NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_shard_metrics_shard_timestamp
    ON {TABLE_NAME} (shard_id, timestamp DESC);
""",
    "sqlite": f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    shard_id INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    row_count INTEGER NOT NULL,
    query_count INTEGER NOT NULL,
    error_count INTEGER NOT NULL,
    avg_response_time REAL NOT NULL,
    active_connections INTEGER NOT NULL,
    load_percentage REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_shard_metrics_shard_timestamp
    ON {TABLE_NAME} (shard_id, timestamp DESC);
""",
}

_COLUMN_LIST = ", ".join(COLUMNS)

INSERT_SQL = f"""
    INSERT INTO {TABLE_NAME} ({_COLUMN_LIST})
    VALUES ({", ".join(f"${i}" for i in range(1, len(COLUMNS) + 1))})
"""

# ROW_NUMBER keeps exactly one row per shard even when two snapshots share
# the newest timestamp.
LATEST_SQL = f"""
    SELECT {_COLUMN_LIST}
    FROM (
        SELECT {_COLUMN_LIST},
               ROW_NUMBER() OVER (
                   PARTITION BY shard_id ORDER BY timestamp DESC
               ) AS recency
        FROM {TABLE_NAME}
    ) AS ranked
    WHERE recency = 1
    ORDER BY shard_id
"""

HISTORY_SQL = f"""
    SELECT {_COLUMN_LIST}
    FROM {TABLE_NAME}
    WHERE shard_id = $1
      AND timestamp >= $2
    ORDER BY timestamp DESC
"""


def _utc_now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# MetricsStore Class
# =============================================================================


class MetricsStore:
    """
    Append-only store for shard metric snapshots.

    The pool is injected so callers (and tests) decide which backend is used.
    A store built with ``from_config`` owns its pool and closes it in
    ``close()``; an injected pool is left for its owner to close.

    Example:
        >>> store = MetricsStore(SqlitePool("/tmp/metrics.db"))
        >>> await store.initialize()
        >>> await store.persist(snapshot)
        >>> latest = await store.get_latest_metrics()
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        dialect: str | None = None,
        owns_pool: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """
        Initialize the MetricsStore.

        Args:
            pool: Connection pool providing ``execute`` and ``fetch``.
            dialect: 'postgres' or 'sqlite'; selects the schema DDL. Inferred
                from the pool type when omitted.
            owns_pool: Close the pool in ``close()``.
            clock: Source of "now" for historical windows.
        """
        if dialect is None:
            dialect = "sqlite" if isinstance(pool, SqlitePool) else "postgres"
        if dialect not in SCHEMA_SQL:
            raise ValueError(
                f"Unsupported dialect: {dialect}. Must be one of: {', '.join(sorted(SCHEMA_SQL))}"
            )
        self._pool = pool
        self.dialect = dialect
        self._owns_pool = owns_pool
        self._clock = clock

    @classmethod
    async def from_config(cls, config: DatabaseConfig) -> MetricsStore:
        """
        Create a store together with the pool described by ``config``.

        Raises:
            PersistenceError: If the pool cannot be created.
        """
        try:
            pool = await create_pool(config)
        except Exception as e:
            logger.error(
                "Failed to create metrics store pool",
                extra={"backend": config.backend, "error": str(e)},
            )
            raise PersistenceError(
                f"Failed to create metrics store pool: {e}",
                details={"backend": config.backend},
            ) from e
        return cls(pool, dialect=config.backend, owns_pool=True)

    async def __aenter__(self) -> MetricsStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def initialize(self) -> None:
        """
        Create the shard_metrics table and its index if they don't exist.

        Idempotent.

        Raises:
            PersistenceError: If the schema cannot be created.
        """
        try:
            await self._pool.execute(SCHEMA_SQL[self.dialect])
        except Exception as e:
            logger.error(
                "Failed to initialize shard metrics schema",
                extra={"dialect": self.dialect, "error": str(e)},
            )
            raise PersistenceError(
                f"Failed to initialize shard metrics schema: {e}",
                details={"dialect": self.dialect},
            ) from e

        logger.info("Shard metrics schema ready", extra={"dialect": self.dialect})

    async def persist(self, snapshot: ShardMetricSnapshot) -> None:
        """
        Append one snapshot.

        There is no deduplication: snapshots sharing ``(shard_id, timestamp)``
        are all kept.

        Args:
            snapshot: The snapshot to store.

        Raises:
            PersistenceError: If the store rejects the write.
        """
        try:
            await self._pool.execute(INSERT_SQL, *snapshot.as_params())
        except Exception as e:
            logger.error(
                "Failed to store shard metrics",
                extra={"shard_id": snapshot.shard_id, "error": str(e)},
            )
            raise PersistenceError(
                f"Failed to store shard metrics: {e}",
                details={
                    "shard_id": snapshot.shard_id,
                    "timestamp": snapshot.timestamp.isoformat(),
                },
            ) from e

        logger.debug(
            "Stored shard metrics",
            extra={"shard_id": snapshot.shard_id},
        )

    async def get_latest_metrics(self) -> list[ShardMetricSnapshot]:
        """
        Get the most recent snapshot of every shard.

        Returns:
            One snapshot per shard id present in storage, ordered by shard id.
            Empty when nothing has been stored.

        Raises:
            RetrievalError: If the query fails.
        """
        try:
            rows = await self._pool.fetch(LATEST_SQL)
            return [ShardMetricSnapshot.from_row(row) for row in rows]
        except Exception as e:
            logger.error(
                "Failed to get latest metrics",
                extra={"error": str(e)},
            )
            raise RetrievalError(f"Failed to get latest metrics: {e}") from e

    async def get_historical_metrics(
        self,
        shard_id: int,
        hours: float = DEFAULT_HISTORY_HOURS,
    ) -> list[ShardMetricSnapshot]:
        """
        Get a shard's snapshots from the last ``hours`` hours.

        The window starts at ``now - hours`` (inclusive), with ``now`` taken
        when the call runs. The bound is passed as a query argument. Values of
        ``hours`` <= 0 are not rejected and simply leave an empty or nearly
        empty window.

        Args:
            shard_id: Shard to read.
            hours: Look-back window in hours (default 24).

        Returns:
            Matching snapshots, newest first.

        Raises:
            RetrievalError: If the query fails.
        """
        try:
            cutoff = self._clock() - timedelta(hours=hours)
            rows = await self._pool.fetch(HISTORY_SQL, shard_id, cutoff)
            return [ShardMetricSnapshot.from_row(row) for row in rows]
        except Exception as e:
            logger.error(
                "Failed to get historical metrics",
                extra={"shard_id": shard_id, "hours": hours, "error": str(e)},
            )
            raise RetrievalError(
                f"Failed to get historical metrics: {e}",
                details={"shard_id": shard_id, "hours": hours},
            ) from e

    async def close(self) -> None:
        """Close the pool if this store created it."""
        if self._owns_pool:
            await self._pool.close()
            logger.debug("Metrics store closed")
