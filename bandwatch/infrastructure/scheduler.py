"""
Incident Scheduler

Architectural Intent:
- Fires the bandwidth check on a cron cadence inside the asyncio loop
- Scheduling reduces to "invoke the incident check now"

Design Decisions:
- APScheduler AsyncIOScheduler with a standard five-field crontab expression
- One job, never run concurrently with itself (max_instances=1) and missed
  runs are coalesced into one
- Times are interpreted in the host's local timezone
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

JOB_ID = "bandwidth-check"


def parse_cron(expression: str) -> CronTrigger:
    """Parse a five-field crontab expression.

    Raises:
        ValueError: the expression is not a valid crontab line
    """
    return CronTrigger.from_crontab(expression)


class IncidentScheduler:
    """Cron-driven trigger for the incident check."""

    def __init__(
        self,
        cron_expression: str,
        job: Callable[[], Awaitable[Any]],
    ) -> None:
        self._trigger = parse_cron(cron_expression)
        self._cron_expression = cron_expression
        self._job = job
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def _run_job(self) -> None:
        logger.info("Scheduled bandwidth check triggered")
        await self._job()

    def start(self) -> None:
        """Start the scheduler on the running event loop."""
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self._run_job,
            self._trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Scheduler started (cron: %s)", self._cron_expression)

    def next_run_time(self):
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def shutdown(self) -> None:
        """Stop firing new checks; a check already running is left alone."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self._scheduler = None
