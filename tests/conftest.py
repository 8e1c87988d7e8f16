"""
Pytest configuration for the shard metrics store tests.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from shard_metrics.models import ShardMetricSnapshot
from shard_metrics.pool import SqlitePool
from shard_metrics.store import MetricsStore

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


class RecordingHandler(logging.Handler):
    """Keeps every record it receives."""

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def at_level(self, level: int) -> list[logging.LogRecord]:
        return [r for r in self.records if r.levelno == level]


@pytest.fixture
def log_records() -> Generator[RecordingHandler, None, None]:
    """Capture records emitted anywhere in the shard_metrics logger tree."""
    logger = logging.getLogger("shard_metrics")
    handler = RecordingHandler()
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield handler
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path for a throwaway SQLite database."""
    return tmp_path / "shard_metrics.db"


@pytest.fixture
async def store(db_path: Path) -> MetricsStore:
    """An initialized store backed by SQLite."""
    store = MetricsStore(SqlitePool(db_path))
    await store.initialize()
    return store


@pytest.fixture
def t0() -> datetime:
    """A fixed sample time, truncated to whole seconds."""
    return datetime.now(UTC).replace(microsecond=0)


def make_snapshot(
    shard_id: int = 1,
    timestamp: datetime | None = None,
    **overrides: object,
) -> ShardMetricSnapshot:
    """Build a snapshot with sensible defaults."""
    values: dict[str, object] = {
        "row_count": 100,
        "query_count": 50,
        "error_count": 0,
        "avg_response_time": 12.5,
        "active_connections": 3,
        "load_percentage": 40.0,
    }
    values.update(overrides)
    return ShardMetricSnapshot(
        shard_id=shard_id,
        timestamp=timestamp or datetime.now(UTC),
        **values,  # type: ignore[arg-type]
    )
