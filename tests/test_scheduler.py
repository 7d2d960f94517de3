import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from spendwise.config import get_config
from spendwise.scheduler import JobScheduler, build_scheduler


def test_jobs_are_registered_with_single_instance():
    scheduler = JobScheduler(BackgroundScheduler())
    scheduler.add_job("nightly", lambda: {"ok": True}, "0 0 * * *")

    jobs = scheduler.scheduler.get_jobs()

    assert [job.id for job in jobs] == ["nightly"]
    assert jobs[0].max_instances == 1
    assert jobs[0].coalesce is True
    assert scheduler.job_names == ["nightly"]


def test_duplicate_job_name_rejected():
    scheduler = JobScheduler(BackgroundScheduler())
    scheduler.add_job("nightly", lambda: None, "0 0 * * *")
    with pytest.raises(ValueError):
        scheduler.add_job("nightly", lambda: None, "0 1 * * *")


def test_invalid_cron_expression_rejected():
    scheduler = JobScheduler(BackgroundScheduler())
    with pytest.raises(ValueError):
        scheduler.add_job("broken", lambda: None, "every night")


def test_run_job_returns_summary():
    scheduler = JobScheduler(BackgroundScheduler())
    scheduler.add_job("count", lambda: {"processed": 3, "errors": 0}, "*/5 * * * *")
    assert scheduler.run_job("count") == {"processed": 3, "errors": 0}


def test_run_job_contains_exceptions():
    def explode():
        raise RuntimeError("boom")

    scheduler = JobScheduler(BackgroundScheduler())
    scheduler.add_job("explode", explode, "0 0 * * *")

    assert scheduler.run_job("explode") is None
    with pytest.raises(KeyError):
        scheduler.run_job("missing")


def test_build_scheduler_registers_every_sweep(engine, notifier):
    config = get_config(RECURRING_JOB_CRON="0 0 * * *", ALERT_JOB_CRON="0 */6 * * *", RESET_JOB_CRON="0 1 * * *")

    scheduler = build_scheduler(engine, notifier, config, BackgroundScheduler())

    assert scheduler.job_names == ["budget-alerts", "budget-reset", "recurring"]
    assert scheduler.run_job("budget-reset") == {"reset": 0, "errors": 0}
    assert scheduler.run_job("budget-alerts") == {"checked": 0, "alerts": 0, "errors": 0}
