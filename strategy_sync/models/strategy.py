"""Strategy model — a named signal combination with backtest and live stats."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Strategy(SQLModel, table=True):
    __tablename__ = "strategy"

    id: int | None = Field(default=None, primary_key=True)
    combination_name: str = Field(index=True)
    coin: str = ""
    timeframe: str = ""

    # Backtest-derived
    occurrences: int = 0
    success_rate: float = 0.0
    profit_factor: float = 0.0
    avg_price_move: float = 0.0

    # Live-derived, written by the reconciler
    real_trade_count: int = 0
    real_success_rate: float = 0.0
    real_avg_pnl_percent: float = 0.0
    real_profit_factor: float = 0.0
    real_avg_conviction_score: float | None = None
    latest_trade_timestamp: datetime | None = None

    # Opt-out state
    opted_out_globally: bool = False
    opted_out_date: datetime | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
