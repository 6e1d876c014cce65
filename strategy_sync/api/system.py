"""System API — health check, scheduler status, sync logs, manual refresh."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from strategy_sync.api.deps import get_sync_service
from strategy_sync.database import get_session
from strategy_sync.engine.sync_cycle import StatsSyncService
from strategy_sync.models.sync_log import SyncLog
from strategy_sync.services.errors import AutoOptOutError, StoreError

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler")
def scheduler_status():
    """Current scheduler state with job and reconciler details."""
    from strategy_sync.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.post("/refresh")
async def trigger_refresh(service: StatsSyncService = Depends(get_sync_service)):
    """Run one sync cycle now."""
    try:
        report = await service.refresh()
    except (StoreError, AutoOptOutError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    return report


@router.post("/trades-changed", status_code=202)
async def trades_changed(service: StatsSyncService = Depends(get_sync_service)):
    """Signal that new trades were written; a refresh follows once they settle."""
    service.notify_trades_changed()
    return {"status": "scheduled", "delay_s": service.refresh_debounce_s}


@router.get("/logs")
def sync_logs(
    strategy_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(SyncLog).order_by(SyncLog.timestamp.desc())
    if strategy_id is not None:
        stmt = stmt.where(SyncLog.strategy_id == strategy_id)
    if status is not None:
        stmt = stmt.where(SyncLog.status == status)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()
