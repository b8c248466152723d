"""
Storage port for the scheduling engine.

Adapters persist availability configs and bookings and provide the
serialization primitive around booking writes.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import AsyncContextManager, List, Optional

from models.availability import AvailabilityConfig
from models.booking import Booking, BookingCreate, BookingStatus


class SchedulingStore(ABC):
    """Durable storage for availability configs and bookings."""

    # ========== Availability ==========

    @abstractmethod
    async def get_availability(self, provider_id: str) -> Optional[AvailabilityConfig]:
        """Get a provider's availability config, or None."""
        raise NotImplementedError

    @abstractmethod
    async def save_availability(self, config: AvailabilityConfig) -> AvailabilityConfig:
        """Insert or replace a provider's availability config."""
        raise NotImplementedError

    # ========== Bookings ==========

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get booking by ID, or None."""
        raise NotImplementedError

    @abstractmethod
    async def list_active_bookings(self, provider_id: str, day: date) -> List[Booking]:
        """All non-cancelled bookings of a provider on a date, ordered by start."""
        raise NotImplementedError

    @abstractmethod
    async def insert_booking(self, booking_data: BookingCreate) -> Booking:
        """
        Persist a new booking.

        Raises:
            ConflictError: If the storage layer detects an overlap
        """
        raise NotImplementedError

    @abstractmethod
    async def update_booking_times(
        self, booking_id: str, booking_data: BookingCreate, expected: tuple = ()
    ) -> Optional[Booking]:
        """
        Move a booking to a new date/interval.

        Returns None if missing, or if `expected` is non-empty and the
        current status is not in it.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        expected: tuple = (),
    ) -> Optional[Booking]:
        """
        Set a booking's status in one atomic write.

        When ``expected`` is given the write only applies if the current
        status is one of them. Returns None when nothing was updated.
        """
        raise NotImplementedError

    @abstractmethod
    async def list_elapsed_bookings(self, now: datetime) -> List[Booking]:
        """Upcoming/confirmed bookings whose end_at is before ``now``."""
        raise NotImplementedError

    # ========== Concurrency ==========

    @abstractmethod
    def booking_lock(self, provider_id: str, day: date) -> AsyncContextManager[None]:
        """Serialize booking check-then-write for one (provider, date)."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections held by the adapter."""
        return None
