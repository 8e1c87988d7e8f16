"""
Data model for shard metric snapshots.

A snapshot is written once by the store and never mutated afterwards. The
``(shard_id, timestamp)`` pair orders snapshots but is not unique.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from shard_metrics.errors import InvalidArgumentError

# Column order shared by the INSERT statement and every SELECT list
COLUMNS: tuple[str, ...] = (
    "shard_id",
    "timestamp",
    "row_count",
    "query_count",
    "error_count",
    "avg_response_time",
    "active_connections",
    "load_percentage",
)

# camelCase spellings accepted by from_dict()
_CAMEL_CASE_KEYS = {
    "shardId": "shard_id",
    "rowCount": "row_count",
    "queryCount": "query_count",
    "errorCount": "error_count",
    "avgResponseTime": "avg_response_time",
    "activeConnections": "active_connections",
    "loadPercentage": "load_percentage",
}


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime) as aware UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"timestamp must be a datetime or ISO-8601 string, got {value!r}")
    return to_utc(value)


@dataclass(frozen=True)
class ShardMetricSnapshot:
    """One point-in-time measurement of a shard's operational metrics.

    Attributes:
        shard_id: Shard identifier.
        timestamp: When the sample was taken (normalized to aware UTC).
        row_count: Rows resident on the shard at sample time.
        query_count: Queries observed in the sampling interval.
        error_count: Errors observed in the sampling interval.
        avg_response_time: Average latency over the interval.
        active_connections: Open connections at sample time.
        load_percentage: Load, expected in [0, 100] but not validated.
    """

    shard_id: int
    timestamp: datetime
    row_count: int
    query_count: int
    error_count: int
    avg_response_time: float
    active_connections: int
    load_percentage: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))

    def as_params(self) -> tuple[Any, ...]:
        """Positional query arguments in ``COLUMNS`` order."""
        return (
            self.shard_id,
            self.timestamp,
            self.row_count,
            self.query_count,
            self.error_count,
            self.avg_response_time,
            self.active_connections,
            self.load_percentage,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "shard_id": self.shard_id,
            "timestamp": self.timestamp.isoformat(),
            "row_count": self.row_count,
            "query_count": self.query_count,
            "error_count": self.error_count,
            "avg_response_time": self.avg_response_time,
            "active_connections": self.active_connections,
            "load_percentage": self.load_percentage,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ShardMetricSnapshot:
        """Build a snapshot from a result row keyed by column name."""
        return cls(
            shard_id=int(row["shard_id"]),
            timestamp=parse_timestamp(row["timestamp"]),
            row_count=int(row["row_count"]),
            query_count=int(row["query_count"]),
            error_count=int(row["error_count"]),
            avg_response_time=float(row["avg_response_time"]),
            active_connections=int(row["active_connections"]),
            load_percentage=float(row["load_percentage"]),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ShardMetricSnapshot:
        """
        Build a snapshot from caller-supplied data.

        Keys may be snake_case or camelCase (``shardId``, ``rowCount``...).

        Raises:
            InvalidArgumentError: If a field is missing or has the wrong type.
        """
        normalized = {_CAMEL_CASE_KEYS.get(key, key): value for key, value in data.items()}

        missing = [column for column in COLUMNS if normalized.get(column) is None]
        if missing:
            raise InvalidArgumentError(
                "Snapshot is missing required fields",
                details={"missing": missing},
            )

        try:
            return cls.from_row(normalized)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(
                f"Invalid snapshot field: {e}",
                details={"shard_id": normalized.get("shard_id")},
            ) from e
