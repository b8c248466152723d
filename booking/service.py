"""
Booking flow.

BookingService ties the scheduling components together and is the entry
point used by request handlers, admin tooling and data-migration scripts.
All booking writes are delegated to BookingGuard.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from booking.availability import AvailabilityResolver, apply_availability_update
from booking.guard import BookingGuard
from db.base import SchedulingStore
from models.availability import AvailabilityConfig, AvailabilityUpdate
from models.booking import (
    OPEN_STATUSES,
    Booking,
    BookingCreate,
    BookingStatus,
    can_transition,
)
from scheduler.lifecycle import SweepResult, run_lifecycle_sweep
from utils.datetime_utils import (
    minutes_to_time,
    parse_date,
    parse_slot_to_range,
    utc_now,
    weekday_name,
)
from utils.exceptions import (
    AvailabilityNotFoundError,
    BookingNotFoundError,
    ConflictError,
    InvalidTransitionError,
    ValidationError,
)
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__)


@dataclass
class ImportResult:
    """Outcome of a bulk booking import."""

    accepted: List[Booking] = field(default_factory=list)
    rejected: List[Tuple[BookingCreate, str]] = field(default_factory=list)


class BookingService:
    """Scheduling operations exposed to the outside world."""

    def __init__(
        self,
        store: SchedulingStore,
        tz: tzinfo,
        lead_minutes: int = 5,
        default_duration_minutes: int = 60,
    ):
        self.store = store
        self.tz = tz
        self.default_duration_minutes = default_duration_minutes
        self.guard = BookingGuard(store)
        self.resolver = AvailabilityResolver(store, tz, lead_minutes=lead_minutes)

    # ========== Availability ==========

    async def save_availability(self, provider_id: str, update: AvailabilityUpdate) -> AvailabilityConfig:
        """Save weekly availability and recompute its generated slots."""
        current = await self.store.get_availability(provider_id)
        config = apply_availability_update(provider_id, current, update)
        saved = await self.store.save_availability(config)
        logger.info(f"Availability saved for provider {provider_id} (version {saved.version})")
        return saved

    async def get_availability(self, provider_id: str) -> AvailabilityConfig:
        config = await self.store.get_availability(provider_id)
        if config is None:
            raise AvailabilityNotFoundError(f"No availability for provider {provider_id}")
        return config

    async def get_available_slots(
        self,
        provider_id: str,
        day: Union[str, date],
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Free slots for a provider on a date; past slots are hidden."""
        return await self.resolver.get_available_slots(provider_id, day, now=now or utc_now())

    # ========== Booking writes ==========

    async def create_booking(
        self,
        provider_id: str,
        client_id: str,
        day: Union[str, date],
        slot: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Book one of the provider's published slots.

        Raises:
            ValidationError: Malformed input, past slot, or a slot the
                provider does not publish on that date
            ConflictError: The slot is already taken
        """
        now = now or utc_now()
        config = await self.store.get_availability(provider_id)
        duration = config.session_settings.duration_minutes if config else None

        candidate = self.build_candidate(provider_id, client_id, day, slot, notes=notes, duration_minutes=duration)
        self._reject_past(candidate, now)

        published = config.slots_for(weekday_name(candidate.date)) if config else []
        if candidate_slot(candidate) not in published:
            raise ValidationError(
                f"{candidate_slot(candidate)} is not an available slot for provider "
                f"{provider_id} on {candidate.date}"
            )

        return await self.guard.admit(candidate)

    async def admin_create_booking(
        self,
        provider_id: str,
        client_id: str,
        day: Union[str, date],
        slot: str,
        notes: Optional[str] = None,
    ) -> Booking:
        """Administrative override: any interval, still guarded against overlap."""
        candidate = self.build_candidate(provider_id, client_id, day, slot, notes=notes)
        logger.info(
            f"Admin booking requested for provider {provider_id} on {candidate.date} "
            f"{candidate_slot(candidate)}"
        )
        return await self.guard.admit(candidate)

    async def import_bookings(self, candidates: Iterable[BookingCreate]) -> ImportResult:
        """
        Data-migration path. Each record is admitted independently; records
        that fail validation or overlap are reported, not written.
        """
        result = ImportResult()
        for candidate in candidates:
            try:
                result.accepted.append(await self.guard.admit(candidate))
            except (ConflictError, ValidationError) as e:
                logger.warning(f"Import rejected {candidate.provider_id} {candidate.date}: {e}")
                result.rejected.append((candidate, str(e)))

        logger.info(
            f"Import complete: {len(result.accepted)} accepted, {len(result.rejected)} rejected"
        )
        return result

    async def reschedule_booking(
        self,
        booking_id: str,
        day: Union[str, date],
        slot: str,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Move an open booking to another slot of the same provider."""
        now = now or utc_now()
        booking = await self.get_booking(booking_id)
        if booking.status not in {s.value for s in OPEN_STATUSES}:
            raise InvalidTransitionError(f"Booking {booking_id} is {booking.status} and cannot be rescheduled")

        candidate = self.build_candidate(
            booking.provider_id,
            booking.client_id,
            day,
            slot,
            notes=booking.notes,
            status=booking.status,
            duration_minutes=int((booking.end_at - booking.start_at).total_seconds() // 60),
        )
        self._reject_past(candidate, now)

        updated = await self.guard.admit_update(booking_id, candidate, expected=OPEN_STATUSES)
        if updated is None:
            # Status changed after the check above
            current = await self.get_booking(booking_id)
            raise InvalidTransitionError(
                f"Booking {booking_id} is {current.status} and cannot be rescheduled"
            )
        return updated

    async def confirm_booking(self, booking_id: str) -> Booking:
        """Upcoming -> confirmed (e.g. after payment)."""
        return await self._transition(booking_id, BookingStatus.CONFIRMED)

    async def cancel_booking(self, booking_id: str) -> Booking:
        """Upcoming/confirmed -> cancelled. Frees the interval."""
        return await self._transition(booking_id, BookingStatus.CANCELLED)

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    async def run_lifecycle_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        return await run_lifecycle_sweep(self.store, now or utc_now())

    # ========== Helpers ==========

    def build_candidate(
        self,
        provider_id: str,
        client_id: str,
        day: Union[str, date],
        slot: str,
        notes: Optional[str] = None,
        status: str = BookingStatus.UPCOMING.value,
        duration_minutes: Optional[int] = None,
    ) -> BookingCreate:
        """
        Turn a date and a slot (or single start time) into a booking candidate.

        A single start time lasts ``duration_minutes``, falling back to the
        service default.

        Raises:
            ValidationError: On malformed input or an interval crossing midnight
        """
        day = parse_date(day)
        start_at, end_at = parse_slot_to_range(
            day, slot, duration_minutes or self.default_duration_minutes, self.tz
        )
        if end_at.date() != day:
            raise ValidationError(f"Booking {slot!r} on {day} must end on the same date")

        try:
            return BookingCreate(
                provider_id=provider_id,
                client_id=client_id,
                date=day,
                time_start=minutes_to_time(start_at.hour * 60 + start_at.minute),
                time_end=minutes_to_time(end_at.hour * 60 + end_at.minute),
                start_at=start_at,
                end_at=end_at,
                status=status,
                notes=notes,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid booking: {e}") from e

    def _reject_past(self, candidate: BookingCreate, now: datetime) -> None:
        cutoff = self.resolver.cutoff(now)
        if candidate.start_at < cutoff:
            raise ValidationError(
                f"Slot {candidate_slot(candidate)} on {candidate.date} starts before "
                f"{cutoff.isoformat()} and can no longer be booked"
            )

    async def _transition(self, booking_id: str, target: BookingStatus) -> Booking:
        booking = await self.get_booking(booking_id)
        if not can_transition(booking.status, target):
            raise InvalidTransitionError(
                f"Booking {booking_id} cannot move from {booking.status} to {target.value}"
            )

        updated = await self.store.update_booking_status(
            booking_id, target, expected=(BookingStatus(booking.status),)
        )
        if updated is None:
            # Status changed between read and write (e.g. the sweep completed it)
            raise InvalidTransitionError(
                f"Booking {booking_id} changed state concurrently, {target.value} not applied"
            )

        logger.info(f"Booking {booking_id}: {booking.status} -> {target.value}")
        return updated


def candidate_slot(candidate: BookingCreate) -> str:
    return f"{candidate.time_start} - {candidate.time_end}"
