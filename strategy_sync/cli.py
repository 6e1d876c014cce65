"""CLI tool for admin operations.

Usage:
    python -m strategy_sync.cli create-tables
    python -m strategy_sync.cli sync-once
    python -m strategy_sync.cli dedup-report
"""

import asyncio
import sys
from collections import Counter

from strategy_sync.database import engine, create_db_and_tables
from strategy_sync.engine.dedup import deduplicate_trades
from strategy_sync.engine.sync_cycle import StatsSyncService
from strategy_sync.services.store import SQLEntityStore
from strategy_sync.utils.constants import TRADE_ENTITY
from strategy_sync.utils.logging import setup_logging


def create_tables():
    create_db_and_tables()
    print("Tables created.")


async def _sync_once():
    service = StatsSyncService(SQLEntityStore(engine), log_bind=engine)
    try:
        report = await service.refresh()
        print(
            f"Trades: {report.raw_trades} raw, {report.closed_trades} closed after dedup\n"
            f"Strategies: {report.strategies}, dirty: {len(report.dirty)}"
        )
        if report.opt_out is not None:
            print(f"Auto opt-out: {report.opt_out.status} {report.opt_out.succeeded}")

        reports = await service.scheduler.drain()
        written = sum(len(r.written) for r in reports)
        lost = sum(len(r.lost) for r in reports)
        print(f"Persisted {written} updates in {len(reports)} flushes, {lost} lost")
        remaining = len(service.scheduler.pending)
        if remaining:
            print(f"{remaining} updates still pending after retries.")
    finally:
        await service.shutdown()


def sync_once():
    """Run one refresh and drain the reconciler."""
    create_db_and_tables()
    asyncio.run(_sync_once())


async def _dedup_report():
    store = SQLEntityStore(engine)
    raw = await store.list(TRADE_ENTITY, sort="-exit_timestamp")
    kept = deduplicate_trades(raw)
    raw_counts = Counter(t.strategy_name for t in raw)
    kept_counts = Counter(t.strategy_name for t in kept)

    print(f"{'strategy':40} {'raw':>6} {'kept':>6}")
    for name, count in raw_counts.most_common():
        print(f"{(name or '(none)')[:40]:40} {count:>6} {kept_counts.get(name, 0):>6}")
    print(f"\nTotal: {len(raw)} raw, {len(kept)} closed unique trades")


def dedup_report():
    """Show raw vs deduplicated trade counts per strategy."""
    asyncio.run(_dedup_report())


COMMANDS = {
    "create-tables": create_tables,
    "sync-once": sync_once,
    "dedup-report": dedup_report,
}


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m strategy_sync.cli <command>")
        print(f"Commands: {', '.join(COMMANDS)}")
        sys.exit(1)

    setup_logging()
    command = COMMANDS.get(sys.argv[1])
    if command is None:
        print(f"Unknown command: {sys.argv[1]}")
        sys.exit(1)
    command()


if __name__ == "__main__":
    main()
