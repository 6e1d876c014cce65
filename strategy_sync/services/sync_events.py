"""Persist sync events (lost updates, opt-outs, failed cycles) to SyncLog."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from strategy_sync.models.sync_log import SyncLog

logger = logging.getLogger(__name__)


def record_sync_event(
    bind,
    action: str,
    status: str,
    message: str,
    strategy_id: int | None = None,
    details: dict[str, Any] | None = None,
):
    """Write a sync event. Failures are logged, never raised to the pipeline."""
    if bind is None:
        return
    log = SyncLog(
        strategy_id=strategy_id,
        status=status,
        action=action,
        message=message,
        details=details,
    )
    try:
        with Session(bind) as session:
            session.add(log)
            session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Could not record sync event '{action}': {e}")
