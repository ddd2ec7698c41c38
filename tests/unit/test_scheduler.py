"""
Unit tests for the scheduler module.

Tests verify scheduler creation, job wiring and the startup job without
starting the background thread.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from tc_dnssec.railway import ErrorCode
from tc_dnssec.railway.result import Result
from tc_dnssec.scheduler import JOB_ID, STARTUP_JOB_ID, create_scheduler


class TestCreateScheduler:
    def test_creates_background_scheduler_with_one_job(self) -> None:
        """
        GIVEN a refresh function
        WHEN create_scheduler is called
        THEN a background scheduler with exactly one cron job is returned.
        """
        refresh_fn = MagicMock(return_value=Result.success(0))
        scheduler = create_scheduler(refresh_fn, cron="0 */12 * * *")

        assert isinstance(scheduler, BackgroundScheduler)
        jobs = scheduler.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].id == JOB_ID
        assert isinstance(jobs[0].trigger, CronTrigger)
        assert jobs[0].max_instances == 1

    def test_cron_fields_reach_the_trigger(self) -> None:
        scheduler = create_scheduler(MagicMock(), cron="15 3 * * 1")
        trigger = scheduler.get_job(JOB_ID).trigger
        fields = {f.name: str(f) for f in trigger.fields}
        assert fields["minute"] == "15"
        assert fields["hour"] == "3"
        assert fields["day_of_week"] == "1"

    def test_run_on_startup_queues_a_one_off_job(self) -> None:
        """
        GIVEN run_on_startup
        WHEN create_scheduler is called
        THEN the refresh is not run in the caller's thread; a one-off job runs it once started.
        """
        refresh_fn = MagicMock(return_value=Result.success(2))
        scheduler = create_scheduler(refresh_fn, run_on_startup=True)

        refresh_fn.assert_not_called()
        startup = scheduler.get_job(STARTUP_JOB_ID)
        assert startup is not None
        assert isinstance(startup.trigger, DateTrigger)
        assert isinstance(scheduler.get_job(JOB_ID).trigger, CronTrigger)

        startup.func()
        refresh_fn.assert_called_once()

    def test_no_startup_run_by_default(self) -> None:
        refresh_fn = MagicMock(return_value=Result.success(0))
        scheduler = create_scheduler(refresh_fn)
        refresh_fn.assert_not_called()
        assert scheduler.get_job(STARTUP_JOB_ID) is None

    def test_startup_failure_does_not_crash(self) -> None:
        """
        GIVEN a refresh that fails or raises
        WHEN the startup job runs
        THEN it returns normally and the failure is only logged.
        """
        failing = MagicMock(return_value=Result.failure(ErrorCode.STORE_UNAVAILABLE, "down"))
        assert create_scheduler(failing, run_on_startup=True).get_job(STARTUP_JOB_ID).func() is None

        crashing = MagicMock(side_effect=RuntimeError("boom"))
        assert create_scheduler(crashing, run_on_startup=True).get_job(STARTUP_JOB_ID).func() is None
        crashing.assert_called_once()
