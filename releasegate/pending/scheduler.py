"""Pending recheck scheduler using APScheduler.

Runs ``PendingQueue.run_due_rechecks`` on an interval with
APScheduler's AsyncIOScheduler. Missed ticks after downtime are
coalesced into a single catch-up run.

Usage:
    scheduler = PendingRecheckScheduler(queue, settings)
    scheduler.start()

    # On shutdown:
    scheduler.stop()
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from releasegate.config import Settings
from releasegate.pending.queue import PendingQueue, RecheckReport

logger = structlog.get_logger(__name__)

JOB_ID = "pending_recheck"


class PendingRecheckScheduler:
    """Manages the periodic recheck of pending items.

    This class:
    - Runs one recheck per interval, never two at once
    - Spreads ticks with jitter and coalesces missed ones
    - Stops the running recheck between items on shutdown
    """

    def __init__(
        self,
        queue: PendingQueue,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the recheck scheduler.

        Args:
            queue: Pending queue to drive
            settings: Interval, jitter and misfire grace
            clock: Source of the evaluation time (defaults to UTC now)
        """
        self._queue = queue
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(UTC))
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        """Start the recheck scheduler.

        Must be called with a running event loop.
        """
        if self._is_running:
            logger.warning("scheduler_already_running")
            return

        self._scheduler = AsyncIOScheduler(timezone=UTC)

        self._scheduler.add_job(
            self._run,
            trigger=IntervalTrigger(
                minutes=self._settings.pending_recheck_interval_minutes,
                jitter=self._settings.pending_recheck_jitter_seconds or None,
                timezone=UTC,
            ),
            id=JOB_ID,
            name="Pending Release Recheck",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=self._settings.pending_recheck_misfire_grace_seconds,
        )

        self._scheduler.start()
        self._is_running = True

        logger.info(
            "pending_scheduler_started",
            interval_minutes=self._settings.pending_recheck_interval_minutes,
            jitter_seconds=self._settings.pending_recheck_jitter_seconds,
        )

    def stop(self) -> None:
        """Stop the scheduler; a running recheck ends after its current item."""
        self._queue.request_stop()
        if self._scheduler and self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("pending_scheduler_stopped")

    async def run_now(self) -> RecheckReport:
        """Run a recheck immediately (manual trigger)."""
        return await self._queue.run_due_rechecks(self._clock())

    async def _run(self) -> RecheckReport | None:
        try:
            return await self._queue.run_due_rechecks(self._clock())
        except Exception as e:
            logger.exception("pending_recheck_failed", error=str(e))
            return None
