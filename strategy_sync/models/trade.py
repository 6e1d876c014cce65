"""Trade model — raw trade record as written by the execution system.

Several ingestion paths append to this table, so the same fill can appear
more than once. Timestamps are stored as received (ISO text) and parsed
during deduplication; a trade without an exit timestamp is still open.
"""

from sqlmodel import SQLModel, Field


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    position_id: str | None = Field(default=None, index=True)
    symbol: str = ""
    strategy_name: str = Field(default="", index=True)  # joins Strategy.combination_name
    entry_price: float = 0.0
    exit_price: float | None = None
    quantity: float = 0.0
    entry_timestamp: str | None = None
    exit_timestamp: str | None = None
    pnl_usd: float | None = None
    pnl_percent: float | None = None
    conviction_score: float | None = None
    trading_mode: str | None = None  # "testnet", "live", ...
