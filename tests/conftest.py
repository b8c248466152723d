"""
Pytest configuration and shared fixtures.
"""

from datetime import date, datetime, time, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from booking.service import BookingService
from db.memory_store import InMemoryStore
from models.availability import AvailabilityUpdate
from models.booking import BookingCreate

PROVIDER_ID = "provider-1"
CLIENT_ID = "client-1"

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
SATURDAY = date(2030, 1, 12)

# Well before MONDAY, so no slot is in the past
NOW = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)


def monday_update(ranges, duration=30, buffer=0) -> AvailabilityUpdate:
    """Availability update enabling only the given Monday ranges."""
    return AvailabilityUpdate(
        days={
            "monday": {
                "enabled": True,
                "raw_ranges": [{"start": s, "end": e} for s, e in ranges],
            }
        },
        session_settings={"duration_minutes": duration, "buffer_minutes": buffer},
    )


@pytest.fixture
def store():
    """Fresh in-memory store."""
    return InMemoryStore()


@pytest.fixture
def service(store):
    """BookingService on UTC wall-clock time."""
    return BookingService(store, timezone.utc, lead_minutes=5, default_duration_minutes=60)


@pytest.fixture
def mock_supabase_client():
    """Create a mock async Supabase client whose query builder chains onto itself."""
    mock_client = MagicMock()
    mock_table = MagicMock()
    for method in ("select", "eq", "neq", "in_", "lt", "order", "insert", "update", "upsert"):
        getattr(mock_table, method).return_value = mock_table
    mock_table.execute = AsyncMock(return_value=MagicMock(data=[]))
    mock_client.table.return_value = mock_table
    return mock_client, mock_table


def make_candidate(day, start, end, provider_id=PROVIDER_ID, client_id=CLIENT_ID, tz=timezone.utc):
    """BookingCreate for a wall-clock interval, bypassing published-slot checks."""
    start_h, start_m = map(int, start.split(":"))
    end_h, end_m = map(int, end.split(":"))
    return BookingCreate(
        provider_id=provider_id,
        client_id=client_id,
        date=day,
        time_start=start,
        time_end=end,
        start_at=datetime.combine(day, time(start_h, start_m), tzinfo=tz),
        end_at=datetime.combine(day, time(end_h, end_m), tzinfo=tz),
    )
