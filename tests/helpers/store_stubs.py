"""
Test helpers for the stats sync pipeline.

An in-memory EntityStore with failure injection, a controllable clock and
record factories, so pipeline tests never touch a database or real time.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from strategy_sync.models.strategy import Strategy
from strategy_sync.models.trade import Trade
from strategy_sync.services.store import BulkUpdateResult, EntityStore
from strategy_sync.utils.constants import STRATEGY_ENTITY, TRADE_ENTITY

BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def iso(minutes: float = 0, seconds: float = 0) -> str:
    """ISO timestamp relative to BASE_TIME."""
    return (BASE_TIME + timedelta(minutes=minutes, seconds=seconds)).isoformat()


def make_trade(**overrides) -> Trade:
    fields = dict(
        symbol="BTC/USDT",
        strategy_name="Alpha",
        entry_price=100.0,
        exit_price=101.0,
        quantity=1.0,
        entry_timestamp=iso(0),
        exit_timestamp=iso(5),
        pnl_usd=1.0,
        pnl_percent=1.0,
        conviction_score=50.0,
        trading_mode="testnet",
    )
    fields.update(overrides)
    return Trade(**fields)


def make_strategy(strategy_id: int, name: str, **overrides) -> Strategy:
    fields = dict(id=strategy_id, combination_name=name, coin="BTC/USDT", timeframe="15m")
    fields.update(overrides)
    return Strategy(**fields)


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeEntityStore(EntityStore):
    """In-memory store with per-record error injection and concurrency tracking."""

    def __init__(self, strategies=(), trades=()):
        self.records = {
            STRATEGY_ENTITY: {s.id: s for s in strategies},
            TRADE_ENTITY: {},
        }
        for index, trade in enumerate(trades, start=1):
            if trade.id is None:
                trade.id = index
            self.records[TRADE_ENTITY][trade.id] = trade

        self.attempts: list[tuple[int, dict]] = []
        self.writes: list[tuple[int, dict]] = []
        self.bulk_calls: list[tuple[list[int], dict]] = []
        self.update_errors: dict[int, list[Exception]] = {}
        self.bulk_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.on_update = None
        self.in_flight = 0
        self.max_in_flight = 0

    def add_trades(self, *trades: Trade):
        for trade in trades:
            if trade.id is None:
                trade.id = len(self.records[TRADE_ENTITY]) + 1
            self.records[TRADE_ENTITY][trade.id] = trade

    async def list(self, entity, filter=None, sort=None, limit=None):
        rows = [
            r for r in self.records[entity].values()
            if all(getattr(r, k) == v for k, v in (filter or {}).items())
        ]
        if sort:
            name = sort.lstrip("-")
            rows.sort(
                key=lambda r: (getattr(r, name) is None, getattr(r, name) or 0),
                reverse=sort.startswith("-"),
            )
        return [type(r)(**r.model_dump()) for r in rows[:limit]]

    async def update(self, entity, record_id, patch):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.attempts.append((record_id, dict(patch)))
            if self.on_update is not None:
                self.on_update(record_id, patch)
            if self.gate is not None:
                await self.gate.wait()
            errors = self.update_errors.get(record_id)
            if errors:
                raise errors.pop(0)
            record = self.records[entity][record_id]
            for key, value in patch.items():
                setattr(record, key, value)
            self.writes.append((record_id, dict(patch)))
            return record
        finally:
            self.in_flight -= 1

    async def bulk_update(self, entity, record_ids, patch):
        self.bulk_calls.append((list(record_ids), dict(patch)))
        if self.bulk_error is not None:
            raise self.bulk_error
        result = BulkUpdateResult()
        for record_id in record_ids:
            record = self.records[entity].get(record_id)
            if record is None:
                result.failed.append({"id": record_id, "error": "not found"})
                continue
            for key, value in patch.items():
                setattr(record, key, value)
            result.succeeded.append(record_id)
        return result
