"""
Spendwise - Job scheduler

Runs the background sweeps on cron expressions with APScheduler. Jobs and
their schedules are passed in at startup. Each run is wrapped so that an
exception is logged and never reaches the scheduler thread.

Author: Spendwise contributors
License: MIT
"""

import functools
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from . import jobs

logger = logging.getLogger(__name__)


class JobScheduler:
    """
    Named cron jobs on a BackgroundScheduler.

    Example:
        scheduler = JobScheduler()
        scheduler.add_job("recurring", run_recurring, "0 0 * * *")
        scheduler.start()
    """

    def __init__(self, scheduler=None):
        self.scheduler = scheduler or BackgroundScheduler()
        self._jobs = {}

    def add_job(self, name, func, cron_expression):
        """
        Register a no-argument callable to run on a standard 5-field cron expression.

        At most one run of a job is in flight; a tick that fires while the previous
        run is still going is skipped by APScheduler.
        """
        if name in self._jobs:
            raise ValueError(f"Job {name!r} is already registered")

        wrapped = functools.partial(self._run, name, func)
        self.scheduler.add_job(
            wrapped,
            CronTrigger.from_crontab(cron_expression),
            id=name,
            name=name,
            max_instances=1,
            coalesce=True,
        )
        self._jobs[name] = func
        logger.info("[SCHEDULER] Registered job '%s' (%s)", name, cron_expression)

    @staticmethod
    def _run(name, func):
        logger.info("[SCHEDULER] Running job '%s'", name)
        try:
            summary = func()
        except Exception:
            logger.exception("[SCHEDULER] Job '%s' failed", name)
            return None
        logger.info("[SCHEDULER] Job '%s' finished: %s", name, summary)
        return summary

    @property
    def job_names(self):
        return sorted(self._jobs)

    def run_job(self, name):
        """Run a registered job once, synchronously, and return its summary."""
        if name not in self._jobs:
            raise KeyError(f"Unknown job: {name}")
        return self._run(name, self._jobs[name])

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("[SCHEDULER] Started with jobs: %s", ", ".join(self.job_names))

    def shutdown(self, wait=False):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("[SCHEDULER] Stopped")


def build_scheduler(engine, notifier, config, scheduler=None):
    """
    Register the three Spendwise sweeps with their configured cron expressions.

    Returns:
        JobScheduler: Not started yet
    """
    job_scheduler = JobScheduler(scheduler)
    job_scheduler.add_job(
        "recurring",
        functools.partial(jobs.process_recurring_transactions, engine),
        config["RECURRING_JOB_CRON"],
    )
    job_scheduler.add_job(
        "budget-alerts",
        functools.partial(jobs.check_budget_alerts, engine, notifier),
        config["ALERT_JOB_CRON"],
    )
    job_scheduler.add_job(
        "budget-reset",
        functools.partial(jobs.reset_expired_budgets, engine),
        config["RESET_JOB_CRON"],
    )
    return job_scheduler
