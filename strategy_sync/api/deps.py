"""Shared API dependencies."""

from fastapi import HTTPException, status

from strategy_sync.engine.sync_cycle import StatsSyncService, get_service


def get_sync_service() -> StatsSyncService:
    """Return the running sync service."""
    service = get_service()
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync service not initialized",
        )
    return service
