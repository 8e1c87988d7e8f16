"""
Operator command line for the shard metrics store.

Commands:
    init-db                     create the shard_metrics table and index
    record --shard-id N ...     persist one snapshot
    latest                      print the newest snapshot of every shard
    history SHARD_ID [--hours]  print a shard's trailing window

Snapshots are printed as JSON lines on stdout. Log records and error reports
go to stderr. Exit status is 1 when the store raises.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from shard_metrics.config import (
    AppConfig,
    add_config_arguments,
    config_overrides_from_args,
    load_config,
)
from shard_metrics.errors import MetricsStoreError
from shard_metrics.logging import get_logger, setup_logging
from shard_metrics.models import ShardMetricSnapshot
from shard_metrics.store import MetricsStore

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="shard-metrics",
        description="Persist and query per-shard operational metrics",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    add_config_arguments(parser)

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the shard_metrics table")

    record = subparsers.add_parser("record", help="Persist one snapshot")
    record.add_argument("--shard-id", type=int, required=True)
    record.add_argument(
        "--timestamp",
        type=str,
        default=None,
        help="ISO-8601 sample time (default: now, UTC)",
    )
    record.add_argument("--row-count", type=int, required=True)
    record.add_argument("--query-count", type=int, required=True)
    record.add_argument("--error-count", type=int, required=True)
    record.add_argument("--avg-response-time", type=float, required=True)
    record.add_argument("--active-connections", type=int, required=True)
    record.add_argument("--load-percentage", type=float, required=True)

    subparsers.add_parser("latest", help="Show the latest snapshot per shard")

    history = subparsers.add_parser("history", help="Show a shard's recent snapshots")
    history.add_argument("shard_id", type=int)
    history.add_argument(
        "--hours",
        type=float,
        default=None,
        help="Look-back window in hours (default: metrics.default_history_hours)",
    )

    return parser


def _snapshot_from_args(args: argparse.Namespace) -> ShardMetricSnapshot:
    return ShardMetricSnapshot.from_dict(
        {
            "shard_id": args.shard_id,
            "timestamp": args.timestamp or datetime.now(UTC),
            "row_count": args.row_count,
            "query_count": args.query_count,
            "error_count": args.error_count,
            "avg_response_time": args.avg_response_time,
            "active_connections": args.active_connections,
            "load_percentage": args.load_percentage,
        }
    )


def _print_snapshots(snapshots: list[ShardMetricSnapshot], out: TextIO) -> None:
    for snapshot in snapshots:
        out.write(json.dumps(snapshot.to_dict()) + "\n")


async def run_command(
    args: argparse.Namespace,
    config: AppConfig,
    *,
    store: MetricsStore | None = None,
    out: TextIO | None = None,
) -> None:
    """
    Execute one parsed command.

    Args:
        args: Parsed command-line arguments.
        config: Loaded application configuration.
        store: Existing store to use; one is built from ``config`` otherwise.
        out: Stream receiving command output (default: stdout).

    Raises:
        MetricsStoreError: If the store or the input rejects the command.
    """
    if out is None:
        out = sys.stdout
    snapshot = _snapshot_from_args(args) if args.command == "record" else None

    owned = store is None
    if store is None:
        store = await MetricsStore.from_config(config.database)

    try:
        if args.command == "init-db":
            await store.initialize()
            out.write("shard_metrics schema ready\n")
        elif args.command == "record":
            await store.persist(snapshot)
            out.write(json.dumps(snapshot.to_dict()) + "\n")
        elif args.command == "latest":
            _print_snapshots(await store.get_latest_metrics(), out)
        elif args.command == "history":
            hours = args.hours
            if hours is None:
                hours = config.metrics.default_history_hours
            _print_snapshots(await store.get_historical_metrics(args.shard_id, hours), out)
    finally:
        if owned:
            await store.close()


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``shard-metrics`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(cli_overrides=config_overrides_from_args(args))
    # stdout carries snapshot JSON lines; keep log records off it
    setup_logging(config.logging, stream=sys.stderr)

    try:
        asyncio.run(run_command(args, config))
    except MetricsStoreError as e:
        details: dict[str, Any] = e.to_dict()
        sys.stderr.write(json.dumps(details, default=str) + "\n")
        return 1
    return 0
