"""Database models."""

from strategy_sync.models.trade import Trade
from strategy_sync.models.strategy import Strategy
from strategy_sync.models.sync_log import SyncLog

__all__ = [
    "Trade",
    "Strategy",
    "SyncLog",
]
