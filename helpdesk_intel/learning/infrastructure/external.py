"""
Learning External Services
==========================

APScheduler wrapper that runs the knowledge learning pass on an interval.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class LearningScheduler:
    """
    Wrapper for APScheduler for the periodic learning pass.

    max_instances=1 keeps a slow pass from overlapping the next tick; the
    job's own run lock covers manual triggers.
    """

    def __init__(self, interval_hours: int = 24):
        self.interval_hours = interval_hours
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Learning scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            hours=self.interval_hours,
            id="knowledge_learning",
            name="Knowledge Learning Job",
            misfire_grace_time=3600,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Learning scheduler started",
            extra={"interval_hours": self.interval_hours}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Learning scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
