"""Strategy stats and opt-out API."""

from fastapi import APIRouter, Depends, HTTPException

from strategy_sync.api.deps import get_sync_service
from strategy_sync.engine.sync_cycle import StatsSyncService
from strategy_sync.schemas.stats import AutoOptOutToggle, StrategyIdsRequest, StrategyStatsRead
from strategy_sync.services.errors import AutoOptOutError, StoreError

router = APIRouter(prefix="/api/strategies", tags=["strategies"])


@router.get("", response_model=list[StrategyStatsRead])
def list_strategies(
    opted_out: bool | None = None,
    service: StatsSyncService = Depends(get_sync_service),
):
    rows = service.latest_stats()
    if opted_out is not None:
        rows = [r for r in rows if r.opted_out_globally == opted_out]
    return rows


@router.get("/{strategy_id}", response_model=StrategyStatsRead)
def get_strategy(strategy_id: int, service: StatsSyncService = Depends(get_sync_service)):
    for row in service.latest_stats():
        if row.id == strategy_id:
            return row
    raise HTTPException(status_code=404, detail="Strategy not found")


@router.post("/opt-out")
async def opt_out(body: StrategyIdsRequest, service: StatsSyncService = Depends(get_sync_service)):
    """Globally opt out the selected strategies."""
    try:
        result = await service.opt_out(body.ids)
    except StoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"succeeded": result.succeeded, "failed": result.failed}


@router.post("/opt-in")
async def opt_in(body: StrategyIdsRequest, service: StatsSyncService = Depends(get_sync_service)):
    """Clear the opt-out flag on the selected strategies."""
    try:
        result = await service.opt_in(body.ids)
    except StoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"succeeded": result.succeeded, "failed": result.failed}


@router.get("/auto-opt-out/status")
def auto_opt_out_status(service: StatsSyncService = Depends(get_sync_service)):
    return {
        "enabled": service.auto_opt_out_enabled,
        "cooldown_remaining_s": round(service.decision_engine.cooldown_remaining(), 1),
    }


@router.put("/auto-opt-out/status")
async def toggle_auto_opt_out(
    body: AutoOptOutToggle,
    service: StatsSyncService = Depends(get_sync_service),
):
    """Enable or disable auto opt-out; enabling runs a check immediately."""
    try:
        outcome = await service.set_auto_opt_out(body.enabled)
    except AutoOptOutError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"enabled": service.auto_opt_out_enabled, "outcome": outcome}


@router.post("/auto-opt-out/run")
async def run_auto_opt_out(service: StatsSyncService = Depends(get_sync_service)):
    """Run an auto opt-out check now."""
    try:
        outcome = await service.run_auto_opt_out()
    except AutoOptOutError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if outcome.status == "rate_limited":
        raise HTTPException(
            status_code=429,
            detail=f"A check was performed recently; retry in {outcome.retry_after_s:.0f}s",
        )
    return outcome
