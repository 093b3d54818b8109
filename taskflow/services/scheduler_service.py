"""APScheduler-backed timer source (runs in-process with a single uvicorn worker)."""
import logging
from contextlib import suppress
from datetime import datetime
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


class APSchedulerTimers:
    """``TimerSource`` on top of an ``AsyncIOScheduler``.

    Reminder jobs keep APScheduler's default misfire grace time: a reminder
    that could not run on time is dropped here and delivered by the next
    reconciliation sweep instead.
    """

    def __init__(self, aps: AsyncIOScheduler = scheduler):
        self._aps = aps

    def call_at(
        self, job_id: str, run_at: datetime, callback: Callable[[], Awaitable[Any]]
    ) -> None:
        # run_at is naive UTC
        self._aps.add_job(
            callback,
            DateTrigger(run_date=run_at, timezone="UTC"),
            id=job_id,
            replace_existing=True,
        )

    def call_every(
        self, job_id: str, seconds: float, callback: Callable[[], Awaitable[Any]]
    ) -> None:
        self._aps.add_job(
            callback,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )

    def cancel(self, job_id: str) -> None:
        # Already-fired one-shot jobs are gone from the store.
        with suppress(JobLookupError):
            self._aps.remove_job(job_id)

    def job_ids(self) -> list[str]:
        return [job.id for job in self._aps.get_jobs()]


def start_scheduler() -> None:
    """Start the shared AsyncIOScheduler. Call once at app startup, inside the loop."""
    if not scheduler.running:
        scheduler.start()
        logger.info("APScheduler started")


def shutdown_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler stopped")
