"""
Lifecycle sweep for bookings using APScheduler.
Moves upcoming/confirmed bookings to completed once their end time has passed.

The scheduler is an explicit object owned by the process composition root
(see server.py); it is started and stopped through application hooks.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from db.base import SchedulingStore
from models.booking import OPEN_STATUSES, BookingStatus
from utils.datetime_utils import utc_now
from utils.exceptions import TransientError
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="scheduler.log")

SWEEP_JOB_ID = "booking_lifecycle_sweep"


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one sweep."""

    transitioned_count: int = 0
    failed_count: int = 0


async def run_lifecycle_sweep(store: SchedulingStore, now: datetime) -> SweepResult:
    """
    Complete every open booking whose end time is before ``now``.

    Each booking is updated with its own conditional write, so a failure on
    one record does not affect the others and re-running is a no-op for
    bookings already completed.

    Args:
        store: Booking storage
        now: Current instant (timezone-aware)

    Returns:
        SweepResult with transitioned and failed counts

    Raises:
        TransientError: If elapsed bookings cannot be listed at all
    """
    bookings = await store.list_elapsed_bookings(now)

    if not bookings:
        logger.debug("No elapsed bookings to complete")
        return SweepResult()

    logger.info(f"Processing {len(bookings)} elapsed bookings")

    transitioned = 0
    failed = 0

    for booking in bookings:
        if not booking.id:
            logger.warning(f"Booking missing ID, skipping: {booking}")
            failed += 1
            continue

        try:
            updated = await store.update_booking_status(
                booking.id, BookingStatus.COMPLETED, expected=OPEN_STATUSES
            )
        except Exception as e:
            logger.error(f"Failed to complete booking {booking.id}: {e}", exc_info=True)
            failed += 1
            continue

        if updated is None:
            # Cancelled or completed by someone else since the listing
            logger.debug(f"Booking {booking.id} no longer open, skipped")
            continue

        transitioned += 1
        logger.info(f"Booking {booking.id} completed (ended {booking.end_at.isoformat()})")

    logger.info(f"Lifecycle sweep complete: {transitioned} completed, {failed} failed")
    return SweepResult(transitioned_count=transitioned, failed_count=failed)


class LifecycleScheduler:
    """
    Periodic background sweep.

    Wraps an AsyncIOScheduler interval job that never overlaps with itself.
    Tick-level errors are logged once per tick; the next tick retries.
    """

    def __init__(
        self,
        store: SchedulingStore,
        interval_seconds: int = 60,
        clock: Callable[[], datetime] = utc_now,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self._store = store
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.last_result: Optional[SweepResult] = None

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def tick(self) -> Optional[SweepResult]:
        """Run one sweep; never raises."""
        try:
            self.last_result = await run_lifecycle_sweep(self._store, self._clock())
            return self.last_result
        except TransientError as e:
            logger.warning(f"Lifecycle sweep skipped, storage unavailable: {e}")
        except Exception as e:
            logger.error(f"Unexpected error in lifecycle sweep: {e}", exc_info=True)
        return None

    def start(self) -> None:
        """Schedule the sweep (first run immediately) and start the scheduler."""
        if self.running:
            return

        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self._interval_seconds),
            id=SWEEP_JOB_ID,
            name="Complete elapsed bookings",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=utc_now(),
        )

        self._scheduler.start()
        logger.info(f"Lifecycle scheduler started (every {self._interval_seconds}s)")

    def stop(self, wait: bool = False) -> None:
        """Stop scheduling further sweeps."""
        if not self.running:
            return
        self._scheduler.shutdown(wait=wait)
        logger.info("Lifecycle scheduler stopped")
