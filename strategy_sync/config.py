"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'strategy_sync.db'}"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite dev server

    # Reconciliation (debounced batch persister)
    flush_min_interval_s: float = 10.0
    flush_retry_cooldown_s: float = 15.0
    flush_debounce_s: float = 2.0
    flush_item_delay_s: float = 0.5
    flush_batch_delay_s: float = 2.0
    flush_batch_size: int = 3

    # Aggregation / change detection
    stats_tolerance: float = 1e-3
    profit_factor_sentinel: float = 10.0
    dedup_time_bucket_s: float = 2.0

    # Auto opt-out policy
    auto_opt_out_enabled: bool = False
    auto_opt_out_min_trades: int = 20
    auto_opt_out_max_profit_factor: float = 1.0
    auto_opt_out_cooldown_s: float = 30.0

    # Refresh cycle
    sync_interval_minutes: int = 5
    trade_refresh_debounce_s: float = 5.0

    model_config = {"env_prefix": "SS_", "env_file": ".env"}


settings = Settings()
