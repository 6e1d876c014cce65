"""Deduplicated trade history API."""

from fastapi import APIRouter, Depends

from strategy_sync.api.deps import get_sync_service
from strategy_sync.engine.sync_cycle import StatsSyncService

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.get("")
def list_trades(
    strategy_name: str | None = None,
    limit: int = 50,
    offset: int = 0,
    service: StatsSyncService = Depends(get_sync_service),
):
    """Closed trades after deduplication, newest exit first."""
    trades = service.trades
    if strategy_name is not None:
        trades = [t for t in trades if t.strategy_name == strategy_name]
    return trades[offset:offset + limit]
