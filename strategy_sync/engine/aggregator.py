"""Per-strategy live statistics from deduplicated trades."""

from collections import defaultdict
from typing import Iterable

from strategy_sync.config import settings
from strategy_sync.engine.dedup import closed_exit_time
from strategy_sync.models.strategy import Strategy
from strategy_sync.models.trade import Trade
from strategy_sync.schemas.stats import DerivedStats


def index_by_strategy(trades: Iterable[Trade]) -> dict[str, list[Trade]]:
    """Multimap of strategy name to its closed trades."""
    index: dict[str, list[Trade]] = defaultdict(list)
    for trade in trades:
        index[trade.strategy_name or ""].append(trade)
    return index


def profit_factor(gross_profit: float, gross_loss: float, sentinel: float | None = None) -> float:
    """Gross profit over gross loss, with a sentinel when nothing was lost."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return settings.profit_factor_sentinel if sentinel is None else sentinel
    return 0.0


def compute_stats(trades: list[Trade], sentinel: float | None = None) -> DerivedStats:
    """Statistics for one strategy's closed trades."""
    closed = [(t, closed_exit_time(t)) for t in trades]
    closed = [(t, ts) for t, ts in closed if ts is not None]
    if not closed:
        return DerivedStats()

    count = len(closed)
    pnls = [t.pnl_usd or 0.0 for t, _ in closed]
    winners = sum(1 for p in pnls if p > 0)
    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p < 0))

    return DerivedStats(
        trade_count=count,
        success_rate=winners / count * 100,
        avg_pnl_percent=sum(t.pnl_percent or 0.0 for t, _ in closed) / count,
        profit_factor=profit_factor(gross_profit, gross_loss, sentinel),
        avg_conviction_score=sum(t.conviction_score or 0.0 for t, _ in closed) / count,
        total_pnl=sum(pnls),
        latest_trade_timestamp=max(ts for _, ts in closed),
    )


def aggregate_stats(
    trades: Iterable[Trade],
    strategies: Iterable[Strategy],
    sentinel: float | None = None,
) -> dict[int, DerivedStats]:
    """One DerivedStats per strategy id, including strategies without trades.

    Trades are joined on ``strategy_name == combination_name``.
    """
    index = index_by_strategy(trades)
    return {
        strategy.id: compute_stats(index.get(strategy.combination_name, []), sentinel)
        for strategy in strategies
    }
