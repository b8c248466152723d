"""
Booking guard.

Every booking write (new booking, reschedule, administrative override,
data-migration import) goes through :class:`BookingGuard`, which re-checks
non-overlap inside the store's per-(provider, date) serialization region
and only then persists. This module is the only place that decides
whether two bookings overlap.
"""

from typing import Iterable, List, Optional, Tuple

from db.base import SchedulingStore
from models.booking import Booking, BookingCreate, BookingStatus
from utils.datetime_utils import time_to_minutes
from utils.exceptions import ConflictError, ValidationError
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__)


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open intervals [a_start, a_end) and [b_start, b_end) share an instant."""
    return b_start < a_end and a_start < b_end


def booking_interval(booking) -> Tuple[int, int]:
    """Minute interval [start, end) of a booking on its calendar date."""
    return time_to_minutes(booking.time_start), time_to_minutes(booking.time_end)


def find_conflicts(
    start: int,
    end: int,
    bookings: Iterable[Booking],
    exclude_id: Optional[str] = None,
) -> List[Booking]:
    """Non-cancelled bookings overlapping [start, end), ignoring ``exclude_id``."""
    conflicts = []
    for booking in bookings:
        if exclude_id and booking.id == exclude_id:
            continue
        if booking.status == BookingStatus.CANCELLED.value:
            continue
        b_start, b_end = booking_interval(booking)
        if intervals_overlap(start, end, b_start, b_end):
            conflicts.append(booking)
    return conflicts


def is_slot_free(start: int, end: int, bookings: Iterable[Booking]) -> bool:
    """True when no non-cancelled booking overlaps [start, end)."""
    return not find_conflicts(start, end, bookings)


class BookingGuard:
    """Authoritative gate for booking writes."""

    def __init__(self, store: SchedulingStore):
        self._store = store

    async def admit(self, candidate: BookingCreate) -> Booking:
        """
        Persist a new booking if it overlaps no other active booking.

        Raises:
            ConflictError: If the interval overlaps an existing booking.
                Nothing is written.
            ValidationError: If the candidate interval is invalid
        """
        start, end = self._validate(candidate)

        async with self._store.booking_lock(candidate.provider_id, candidate.date):
            existing = await self._store.list_active_bookings(candidate.provider_id, candidate.date)
            self._raise_on_conflict(candidate, start, end, existing)
            booking = await self._store.insert_booking(candidate)

        logger.info(
            f"Booking {booking.id} admitted for provider {booking.provider_id} "
            f"on {booking.date} {booking.slot}"
        )
        return booking

    async def admit_update(
        self, booking_id: str, candidate: BookingCreate, expected: tuple = ()
    ) -> Optional[Booking]:
        """
        Move an existing booking to the candidate's date and interval.

        The booking's own current interval is not treated as a conflict.
        When `expected` is given the write only applies while the booking
        still has one of those statuses. Returns None if the booking vanished
        or left those statuses before the write.
        """
        start, end = self._validate(candidate)

        async with self._store.booking_lock(candidate.provider_id, candidate.date):
            existing = await self._store.list_active_bookings(candidate.provider_id, candidate.date)
            self._raise_on_conflict(candidate, start, end, existing, exclude_id=booking_id)
            booking = await self._store.update_booking_times(booking_id, candidate, expected=expected)

        if booking:
            logger.info(
                f"Booking {booking_id} moved to {booking.date} {booking.slot}"
            )
        return booking

    @staticmethod
    def _validate(candidate: BookingCreate) -> Tuple[int, int]:
        start, end = booking_interval(candidate)
        if end <= start:
            raise ValidationError(
                f"Booking must end after it starts: {candidate.time_start} - {candidate.time_end}"
            )
        if candidate.status == BookingStatus.CANCELLED.value:
            raise ValidationError("Cannot write a booking in cancelled state")
        return start, end

    @staticmethod
    def _raise_on_conflict(
        candidate: BookingCreate,
        start: int,
        end: int,
        existing: List[Booking],
        exclude_id: Optional[str] = None,
    ) -> None:
        conflicts = find_conflicts(start, end, existing, exclude_id=exclude_id)
        if not conflicts:
            return

        ids = [b.id for b in conflicts]
        logger.warning(
            f"Booking rejected for provider {candidate.provider_id} on {candidate.date} "
            f"{candidate.time_start} - {candidate.time_end}: overlaps {ids}"
        )
        raise ConflictError(
            f"Time slot {candidate.time_start} - {candidate.time_end} on {candidate.date} "
            f"is not available",
            conflicting_ids=ids,
        )
