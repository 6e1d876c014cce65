"""SyncLog model — lost updates, opt-outs and cycle failures."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class SyncLog(SQLModel, table=True):
    __tablename__ = "sync_log"

    id: int | None = Field(default=None, primary_key=True)
    strategy_id: int | None = Field(default=None, index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "success", "warning", "error", "lost"
    action: str  # "stats_update", "auto_opt_out", "opt_out", "opt_in", "refresh"
    message: str | None = None
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
