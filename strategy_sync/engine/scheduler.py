"""APScheduler integration for FastAPI.

Runs the periodic stats sync cycle.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from strategy_sync.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

SYNC_JOB_ID = "stats_sync"


def add_sync_job(interval_minutes: int | None = None):
    """Add or replace the periodic sync job."""
    from strategy_sync.engine.sync_cycle import run_sync_cycle

    minutes = interval_minutes or settings.sync_interval_minutes
    scheduler.add_job(
        run_sync_cycle,
        trigger=IntervalTrigger(minutes=minutes),
        id=SYNC_JOB_ID,
        name="Strategy stats sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled stats sync every {minutes}m")


def start_scheduler():
    """Start the scheduler with the sync job."""
    add_sync_job()
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler and reconciler state for the API."""
    from strategy_sync.engine.sync_cycle import get_service

    jobs = scheduler.get_jobs()
    service = get_service()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
        "sync": service.status() if service else None,
    }
