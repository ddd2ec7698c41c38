"""
Scheduler — periodic refresh of CDN DNSSEC keys with APScheduler (3.x).

The refresh job runs in a background thread next to the ASGI server; the
application lifespan starts it and shuts it down. A refresh still running
when the next fire time arrives is not started twice.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from tc_dnssec.railway import LoggingExecutionContext
from tc_dnssec.railway.result import Result

log = structlog.get_logger()

JOB_ID = "tc_dnssec_refresh"
STARTUP_JOB_ID = "tc_dnssec_refresh_startup"


def create_scheduler(
    refresh_fn: Callable[[], Result[int]],
    cron: str = "0 2 * * *",
    run_on_startup: bool = False,
) -> BackgroundScheduler:
    """
    Build (but don't start) a scheduler running `refresh_fn` on `cron`.

    `refresh_fn` returns the number of CDNs it rotated. With `run_on_startup`
    a one-off job runs one refresh on the scheduler thread as soon as the
    scheduler starts. Failures of either job are logged, not raised.
    """
    ctx = LoggingExecutionContext(operation="RefreshDNSSECKeys")

    def _refresh() -> None:
        ctx.execute(refresh_fn).either(
            lambda rotated: log.info("scheduler.job_completed", cdns_rotated=rotated),
            lambda failure: log.error(
                "scheduler.job_failed",
                error_code=failure.code.value,
                error=failure.message,
            ),
        )

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        _refresh,
        trigger=CronTrigger.from_crontab(cron),
        id=JOB_ID,
        name="DNSSEC key refresh",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    log.info("scheduler.configured", cron=cron, job_id=JOB_ID)

    if run_on_startup:
        # No trigger: runs once, right after start().
        scheduler.add_job(
            _refresh,
            id=STARTUP_JOB_ID,
            name="DNSSEC key refresh (startup)",
            max_instances=1,
            replace_existing=True,
        )
        log.info("scheduler.startup_run_queued", job_id=STARTUP_JOB_ID)

    return scheduler
