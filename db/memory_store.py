"""
In-process storage adapter.

Keeps availability configs and bookings in dictionaries. The booking lock
is an asyncio.Lock per (provider, date), which only serializes writers
inside this process: use it for tests and single-process development.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

from db.base import SchedulingStore
from models.availability import AvailabilityConfig
from models.booking import OPEN_STATUSES, Booking, BookingCreate, BookingStatus
from utils.datetime_utils import utc_now


class InMemoryStore(SchedulingStore):
    """Dictionary-backed store."""

    def __init__(self) -> None:
        self._availability: Dict[str, AvailabilityConfig] = {}
        self._bookings: Dict[str, Booking] = {}
        self._locks: Dict[Tuple[str, date], asyncio.Lock] = {}
        self._lock_waiters: Dict[Tuple[str, date], int] = {}

    # ========== Availability ==========

    async def get_availability(self, provider_id: str) -> Optional[AvailabilityConfig]:
        config = self._availability.get(provider_id)
        return config.model_copy(deep=True) if config else None

    async def save_availability(self, config: AvailabilityConfig) -> AvailabilityConfig:
        stored = config.model_copy(deep=True)
        self._availability[config.provider_id] = stored
        return stored.model_copy(deep=True)

    # ========== Bookings ==========

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.model_copy() if booking else None

    async def list_active_bookings(self, provider_id: str, day: date) -> List[Booking]:
        bookings = [
            b.model_copy()
            for b in self._bookings.values()
            if b.provider_id == provider_id
            and b.date == day
            and b.status != BookingStatus.CANCELLED.value
        ]
        return sorted(bookings, key=lambda b: b.start_at)

    async def insert_booking(self, booking_data: BookingCreate) -> Booking:
        now = utc_now()
        booking = Booking(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **booking_data.model_dump(),
        )
        self._bookings[booking.id] = booking
        return booking.model_copy()

    async def update_booking_times(
        self, booking_id: str, booking_data: BookingCreate, expected: tuple = ()
    ) -> Optional[Booking]:
        current = self._bookings.get(booking_id)
        if current is None:
            return None
        if expected and current.status not in {BookingStatus(s).value for s in expected}:
            return None

        fields = booking_data.model_dump(include={"date", "time_start", "time_end", "start_at", "end_at"})
        updated = current.model_copy(update={**fields, "updated_at": utc_now()})
        self._bookings[booking_id] = updated
        return updated.model_copy()

    async def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        expected: tuple = (),
    ) -> Optional[Booking]:
        current = self._bookings.get(booking_id)
        if current is None:
            return None
        if expected and current.status not in {BookingStatus(s).value for s in expected}:
            return None

        updated = current.model_copy(
            update={"status": BookingStatus(status).value, "updated_at": utc_now()}
        )
        self._bookings[booking_id] = updated
        return updated.model_copy()

    async def list_elapsed_bookings(self, now: datetime) -> List[Booking]:
        open_values = {s.value for s in OPEN_STATUSES}
        return [
            b.model_copy()
            for b in self._bookings.values()
            if b.status in open_values and b.end_at < now
        ]

    # ========== Concurrency ==========

    @asynccontextmanager
    async def booking_lock(self, provider_id: str, day: date) -> AsyncIterator[None]:
        key = (provider_id, day)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_waiters[key] = self._lock_waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # Drop the lock once nobody holds or waits for it
            self._lock_waiters[key] -= 1
            if not self._lock_waiters[key]:
                del self._lock_waiters[key]
                del self._locks[key]
