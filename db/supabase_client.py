"""
Supabase storage adapter.
Handles all database interactions for provider availability and bookings.

Non-overlap guarantee:
======================
PostgREST calls cannot share a transaction, so the per-(provider, date)
serialization of booking writes is enforced by PostgreSQL itself through
an exclusion constraint on the bookings table (see
db/migrations/001_scheduling.sql):

    EXCLUDE USING gist (
        provider_id WITH =,
        tstzrange(start_at, end_at, '[)') WITH &&
    ) WHERE (status <> 'cancelled')

BookingGuard still performs its read-side check first; two concurrent
writers that both pass it are decided atomically by the constraint, and
the loser's insert/update fails with SQLSTATE 23P01, which this adapter
maps to ConflictError.

Uses the service_role key, which bypasses RLS.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, List, NoReturn, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from db.base import SchedulingStore
from models.availability import AvailabilityConfig
from models.booking import OPEN_STATUSES, Booking, BookingCreate, BookingStatus
from utils.datetime_utils import parse_iso_datetime, to_iso_string, utc_now
from utils.exceptions import ConflictError, StorageError, TransientError
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__)

AVAILABILITY_TABLE = "provider_availability"
BOOKINGS_TABLE = "bookings"

# SQLSTATE codes raised by the overlap constraints
EXCLUSION_VIOLATION = "23P01"
UNIQUE_VIOLATION = "23505"


def _raise_storage_error(action: str, error: Exception) -> NoReturn:
    """Translate client library errors into the scheduling error taxonomy."""
    if isinstance(error, APIError) and error.code in (EXCLUSION_VIOLATION, UNIQUE_VIOLATION):
        raise ConflictError(f"Failed to {action}: time slot overlaps an existing booking") from error
    if isinstance(error, httpx.TransportError):
        raise TransientError(f"Failed to {action}: storage unavailable ({error})") from error
    if isinstance(error, APIError) and error.code in ("57014", "PGRST000", "PGRST001", "PGRST002"):
        # statement timeout / connection errors reported by PostgREST
        raise TransientError(f"Failed to {action}: {error.message}") from error
    raise StorageError(f"Failed to {action}: {error}") from error


class SupabaseStore(SchedulingStore):
    """
    Supabase storage wrapper.

    Queries go through the async supabase client so a slow database never
    blocks the event loop shared with the lifecycle scheduler.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    async def connect(cls, url: str, key: str) -> "SupabaseStore":
        """Create a store backed by a new async Supabase client."""
        client = await acreate_client(url, key)
        logger.info("Supabase store connected")
        return cls(client)

    async def close(self) -> None:
        """Close the PostgREST HTTP session."""
        await self.client.postgrest.aclose()
        logger.info("Supabase store closed")

    # ========== Availability Operations ==========

    async def get_availability(self, provider_id: str) -> Optional[AvailabilityConfig]:
        """Get a provider's availability config."""
        try:
            response = (
                await self.client.table(AVAILABILITY_TABLE)
                .select("*")
                .eq("provider_id", provider_id)
                .execute()
            )
        except Exception as e:
            _raise_storage_error("get availability", e)

        if response.data:
            return self._parse_availability(response.data[0])
        return None

    async def save_availability(self, config: AvailabilityConfig) -> AvailabilityConfig:
        """Insert or replace a provider's availability config."""
        data = config.model_dump(mode="json")

        try:
            response = (
                await self.client.table(AVAILABILITY_TABLE)
                .upsert(data, on_conflict="provider_id")
                .execute()
            )
        except Exception as e:
            _raise_storage_error("save availability", e)

        if not response.data:
            raise StorageError("Failed to save availability: no data returned")

        return self._parse_availability(response.data[0])

    # ========== Booking Operations ==========

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get booking by ID."""
        try:
            response = (
                await self.client.table(BOOKINGS_TABLE)
                .select("*")
                .eq("id", booking_id)
                .execute()
            )
        except Exception as e:
            _raise_storage_error("get booking", e)

        if response.data:
            return self._parse_booking(response.data[0])
        return None

    async def list_active_bookings(self, provider_id: str, day: date) -> List[Booking]:
        """Get all non-cancelled bookings of a provider on a date."""
        try:
            response = (
                await self.client.table(BOOKINGS_TABLE)
                .select("*")
                .eq("provider_id", provider_id)
                .eq("date", day.isoformat())
                .neq("status", BookingStatus.CANCELLED.value)
                .order("start_at", desc=False)
                .execute()
            )
        except Exception as e:
            _raise_storage_error("list bookings", e)

        return [self._parse_booking(item) for item in response.data]

    async def insert_booking(self, booking_data: BookingCreate) -> Booking:
        """Create a new booking."""
        data = self._booking_payload(booking_data)

        try:
            response = await self.client.table(BOOKINGS_TABLE).insert(data).execute()
        except Exception as e:
            _raise_storage_error("create booking", e)

        if not response.data:
            raise StorageError("Failed to create booking: no data returned")

        return self._parse_booking(response.data[0])

    async def update_booking_times(
        self,
        booking_id: str,
        booking_data: BookingCreate,
        expected: tuple = (),
    ) -> Optional[Booking]:
        """Move a booking to a new date and interval, optionally only from the ``expected`` statuses."""
        data = self._booking_payload(booking_data)
        update_data = {
            key: data[key] for key in ("date", "time_start", "time_end", "start_at", "end_at")
        }
        update_data["updated_at"] = to_iso_string(utc_now())

        try:
            query = (
                self.client.table(BOOKINGS_TABLE)
                .update(update_data)
                .eq("id", booking_id)
            )
            if expected:
                query = query.in_("status", [BookingStatus(s).value for s in expected])
            response = await query.execute()
        except Exception as e:
            _raise_storage_error("reschedule booking", e)

        if not response.data:
            return None

        return self._parse_booking(response.data[0])

    async def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        expected: tuple = (),
    ) -> Optional[Booking]:
        """Update booking status, optionally only from the ``expected`` statuses."""
        update_data = {
            "status": BookingStatus(status).value,
            "updated_at": to_iso_string(utc_now()),
        }

        try:
            query = (
                self.client.table(BOOKINGS_TABLE)
                .update(update_data)
                .eq("id", booking_id)
            )
            if expected:
                query = query.in_("status", [BookingStatus(s).value for s in expected])
            response = await query.execute()
        except Exception as e:
            _raise_storage_error("update booking status", e)

        if not response.data:
            return None

        return self._parse_booking(response.data[0])

    async def list_elapsed_bookings(self, now: datetime) -> List[Booking]:
        """Get open bookings whose end time is before ``now``."""
        try:
            response = (
                await self.client.table(BOOKINGS_TABLE)
                .select("*")
                .in_("status", [s.value for s in OPEN_STATUSES])
                .lt("end_at", to_iso_string(now))
                .order("end_at", desc=False)
                .execute()
            )
        except Exception as e:
            _raise_storage_error("list elapsed bookings", e)

        return [self._parse_booking(item) for item in response.data]

    # ========== Concurrency ==========

    @asynccontextmanager
    async def booking_lock(self, provider_id: str, day: date) -> AsyncIterator[None]:
        # Serialization happens in PostgreSQL via the exclusion constraint
        yield

    # ========== Helper Methods ==========

    @staticmethod
    def _booking_payload(booking_data: BookingCreate) -> dict:
        data = booking_data.model_dump(mode="json", exclude_none=True)
        data["start_at"] = to_iso_string(booking_data.start_at)
        data["end_at"] = to_iso_string(booking_data.end_at)
        return data

    def _parse_availability(self, item: dict) -> AvailabilityConfig:
        item = item.copy()
        if item.get("updated_at"):
            item["updated_at"] = parse_iso_datetime(item["updated_at"])
        return AvailabilityConfig(**item)

    def _parse_booking(self, item: dict) -> Booking:
        """
        Parse booking data from database response.

        Args:
            item: Raw booking data from database

        Returns:
            Parsed Booking object
        """
        item = item.copy()
        for field in ["start_at", "end_at", "created_at", "updated_at"]:
            if item.get(field):
                item[field] = parse_iso_datetime(item[field])
        if isinstance(item.get("time_start"), str):
            item["time_start"] = item["time_start"][:5]
        if isinstance(item.get("time_end"), str):
            item["time_end"] = item["time_end"][:5]
        return Booking(**item)
