"""Tests for the APScheduler job wiring."""

from strategy_sync.engine import scheduler as sched
from strategy_sync.engine import sync_cycle


def test_sync_job_configuration():
    sched.add_sync_job(interval_minutes=3)
    try:
        jobs = sched.scheduler.get_jobs()
        assert [j.id for j in jobs] == [sched.SYNC_JOB_ID]
        job = jobs[0]
        assert job.func is sync_cycle.run_sync_cycle
        assert job.max_instances == 1
        assert job.coalesce is True
        assert "0:03:00" in str(job.trigger)
    finally:
        sched.scheduler.remove_job(sched.SYNC_JOB_ID)


def test_status_without_service(monkeypatch):
    monkeypatch.setattr(sync_cycle, "_service_instance", None)
    status = sched.get_scheduler_status()
    assert status["running"] is False
    assert status["sync"] is None
