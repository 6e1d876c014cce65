"""Trade deduplication.

The same fill can reach the trade table through more than one ingestion
path, and a position can be closed more than once by independent writers.
Counting those copies would corrupt every downstream statistic, so every
aggregation starts from ``deduplicate_trades``.

Rules:
1. Open trades (missing or malformed ``exit_timestamp``) are dropped.
2. ``position_id`` is the canonical key when present.
3. Otherwise a composite key of rounded prices/quantity, a coarse entry-time
   bucket, symbol, strategy and trading mode is used.
4. Within a key the latest exit wins, then the more complete record.

The reduction is independent of input order.
"""

import logging
import math
from datetime import datetime
from typing import Iterable

from strategy_sync.config import settings
from strategy_sync.models.trade import Trade
from strategy_sync.utils.timeutil import parse_timestamp

logger = logging.getLogger(__name__)


def _rounded(value, digits: int) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return round(number, digits)


def _entry_bucket(value, bucket_s: float) -> int | None:
    ts = parse_timestamp(value)
    if ts is None:
        return None
    return math.floor(ts.timestamp() / bucket_s)


def dedup_key(trade: Trade, bucket_s: float | None = None) -> tuple:
    """Grouping key for a closed trade."""
    if trade.position_id:
        return ("position", str(trade.position_id))
    bucket_s = bucket_s or settings.dedup_time_bucket_s
    return (
        "composite",
        trade.symbol or "",
        trade.strategy_name or "",
        _rounded(trade.entry_price, 4),
        _rounded(trade.exit_price, 4),
        _rounded(trade.quantity, 6),
        _entry_bucket(trade.entry_timestamp, bucket_s),
        trade.trading_mode or "",
    )


def _populated_fields(trade: Trade) -> int:
    return sum(1 for value in trade.model_dump().values() if value not in (None, ""))


def _rank(trade: Trade, exit_ts: datetime) -> tuple:
    # Last element makes ties fully deterministic regardless of input order.
    return (exit_ts, _populated_fields(trade), repr(sorted(trade.model_dump().items())))


def deduplicate_trades(trades: Iterable[Trade], bucket_s: float | None = None) -> list[Trade]:
    """Collapse raw trades into one closed record per position.

    Returns the survivors ordered by exit time, newest first.
    """
    best: dict[tuple, tuple[tuple, Trade]] = {}
    raw_count = 0
    open_count = 0

    for trade in trades:
        raw_count += 1
        exit_ts = parse_timestamp(trade.exit_timestamp)
        if exit_ts is None:
            open_count += 1
            continue

        key = dedup_key(trade, bucket_s)
        rank = _rank(trade, exit_ts)
        current = best.get(key)
        if current is None or rank > current[0]:
            best[key] = (rank, trade)

    survivors = sorted(best.values(), key=lambda item: item[0], reverse=True)
    result = [trade for _, trade in survivors]

    duplicates = raw_count - open_count - len(result)
    if duplicates:
        logger.info(
            f"Deduplicated {raw_count} trades: {len(result)} kept, "
            f"{duplicates} duplicates, {open_count} open/unparseable"
        )
    return result


def closed_exit_time(trade: Trade) -> datetime | None:
    """Parsed exit time of a trade, or None if it is not (validly) closed."""
    return parse_timestamp(trade.exit_timestamp)
