"""
Connection pool seam for the shard metrics store.

The store only needs three coroutines from a pool: ``execute`` for writes and
DDL, ``fetch`` for reads returning rows addressable by column name, and
``close``. ``asyncpg.Pool`` provides all three natively and is the production
backend. ``SqlitePool`` offers the same surface over a local SQLite file for
development and tests.

Queries are written with PostgreSQL-style ``$n`` placeholders throughout.
"""

from __future__ import annotations

import asyncio
import re
import sqlite3
from collections.abc import Generator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import asyncpg

from shard_metrics.logging import get_logger
from shard_metrics.models import to_utc

if TYPE_CHECKING:
    from shard_metrics.config import DatabaseConfig

logger = get_logger(__name__)

_PLACEHOLDER_RE = re.compile(r"\$(\d+)")


class ConnectionPool(Protocol):
    """Minimal pool contract used by MetricsStore."""

    async def execute(self, query: str, *args: Any) -> Any: ...

    async def fetch(self, query: str, *args: Any) -> Sequence[Mapping[str, Any]]: ...

    async def close(self) -> None: ...


def _rewrite_placeholders(query: str) -> str:
    """Rewrite ``$1, $2, ...`` placeholders to SQLite's numbered ``?1, ?2, ...``."""
    return _PLACEHOLDER_RE.sub(r"?\1", query)


def _adapt_arg(value: Any) -> Any:
    """Store datetimes as fixed-width UTC ISO-8601 text so they sort correctly."""
    if isinstance(value, datetime):
        return to_utc(value).isoformat(timespec="microseconds")
    return value


class SqlitePool:
    """
    SQLite-backed stand-in for an asyncpg pool.

    Each call opens its own connection and runs in the default executor, so
    the event loop is never blocked on file I/O. Statements with arguments
    run through ``execute``; argument-less statements run as a script, which
    lets schema DDL contain several statements just as with asyncpg.

    Example:
        >>> pool = SqlitePool("/tmp/shard_metrics.db")
        >>> await pool.execute("CREATE TABLE t (x INTEGER)")
        >>> await pool.fetch("SELECT x FROM t WHERE x > $1", 3)
        []
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            # WAL lets readers proceed while a write is in progress
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        finally:
            conn.close()

    async def execute(self, query: str, *args: Any) -> str:
        """
        Run a statement and commit it.

        Returns:
            A status string in the style of asyncpg (e.g. ``"INSERT 1"``).
        """
        sql = _rewrite_placeholders(query)
        params = [_adapt_arg(arg) for arg in args]

        def _execute() -> str:
            with self._get_connection() as conn:
                if params:
                    cursor = conn.execute(sql, params)
                    rowcount = cursor.rowcount
                else:
                    conn.executescript(sql)
                    rowcount = 0
                conn.commit()
            verb = sql.split(None, 1)[0].upper() if sql.strip() else ""
            return f"{verb} {max(rowcount, 0)}"

        return await asyncio.get_running_loop().run_in_executor(None, _execute)

    async def fetch(self, query: str, *args: Any) -> list[sqlite3.Row]:
        """Run a query and return all rows."""
        sql = _rewrite_placeholders(query)
        params = [_adapt_arg(arg) for arg in args]

        def _fetch() -> list[sqlite3.Row]:
            with self._get_connection() as conn:
                return conn.execute(sql, params).fetchall()

        return await asyncio.get_running_loop().run_in_executor(None, _fetch)

    async def close(self) -> None:
        """No-op: connections are opened per call."""
        logger.debug("SQLite pool closed", extra={"db_path": str(self.db_path)})


async def create_pool(config: DatabaseConfig) -> ConnectionPool:
    """
    Build the pool described by ``config``.

    Args:
        config: Database configuration section.

    Returns:
        An ``asyncpg.Pool`` for the postgres backend, a ``SqlitePool`` otherwise.

    Raises:
        asyncpg.PostgresError: If the initial connections cannot be made.
        OSError: If the PostgreSQL server is unreachable.
    """
    if config.backend == "sqlite":
        logger.info(
            "Using SQLite metrics backend",
            extra={"db_path": config.sqlite_path},
        )
        return SqlitePool(config.sqlite_path)

    pool = await asyncpg.create_pool(
        config.dsn,
        min_size=config.min_pool_size,
        max_size=config.max_pool_size,
        command_timeout=config.command_timeout_seconds,
    )
    logger.info(
        "PostgreSQL pool created",
        extra={
            "min_size": config.min_pool_size,
            "max_size": config.max_pool_size,
        },
    )
    return pool
