"""Pydantic schemas for derived strategy statistics."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from strategy_sync.utils.timeutil import as_utc


class DerivedStats(BaseModel):
    """Latest live statistics for one strategy, recomputed every cycle."""

    trade_count: int = Field(default=0, ge=0)
    success_rate: float = 0.0
    avg_pnl_percent: float = 0.0
    profit_factor: float = Field(default=0.0, ge=0)
    avg_conviction_score: float | None = None
    total_pnl: float = 0.0
    latest_trade_timestamp: datetime | None = None

    model_config = {"frozen": True}

    @field_validator("latest_trade_timestamp")
    @classmethod
    def _normalise_timestamp(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @classmethod
    def from_strategy(cls, strategy) -> "DerivedStats":
        """Rebuild the persisted snapshot from a strategy record's live fields."""
        return cls(
            trade_count=strategy.real_trade_count or 0,
            success_rate=strategy.real_success_rate or 0.0,
            avg_pnl_percent=strategy.real_avg_pnl_percent or 0.0,
            profit_factor=strategy.real_profit_factor or 0.0,
            avg_conviction_score=strategy.real_avg_conviction_score,
            latest_trade_timestamp=strategy.latest_trade_timestamp,
        )

    def to_patch(self) -> dict[str, Any]:
        """The complete set of persisted fields; never a partial patch."""
        return {
            "real_trade_count": self.trade_count,
            "real_success_rate": self.success_rate,
            "real_avg_pnl_percent": self.avg_pnl_percent,
            "real_profit_factor": self.profit_factor,
            "real_avg_conviction_score": self.avg_conviction_score,
            "latest_trade_timestamp": self.latest_trade_timestamp,
        }


class StrategyStatsRead(BaseModel):
    id: int
    combination_name: str
    coin: str
    timeframe: str
    opted_out_globally: bool
    live: DerivedStats
    backtest_trade_count: int
    backtest_success_rate: float
    backtest_profit_factor: float
    backtest_avg_price_move: float


class StrategyIdsRequest(BaseModel):
    ids: list[int] = Field(min_length=1)


class AutoOptOutToggle(BaseModel):
    enabled: bool
