"""
Unit tests for the Supabase storage adapter.
Tests with mocked Supabase API calls.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from db.supabase_client import SupabaseStore
from models.availability import AvailabilityConfig
from models.booking import BookingStatus
from utils.exceptions import ConflictError, StorageError, TransientError

from conftest import MONDAY, make_candidate

BOOKING_ROW = {
    "id": "booking_123",
    "provider_id": "provider-1",
    "client_id": "client-1",
    "date": "2030-01-07",
    "time_start": "09:00:00",
    "time_end": "10:00:00",
    "start_at": "2030-01-07T09:00:00+00:00",
    "end_at": "2030-01-07T10:00:00+00:00",
    "status": "upcoming",
    "notes": None,
    "created_at": "2030-01-01T08:00:00Z",
    "updated_at": "2030-01-01T08:00:00Z",
}


def _api_error(code, message="error"):
    return APIError({"message": message, "code": code, "hint": None, "details": None})


@pytest.fixture
def supabase_store(mock_supabase_client):
    """Create SupabaseStore with mocked client."""
    mock_client, _ = mock_supabase_client
    return SupabaseStore(mock_client)


@pytest.mark.asyncio
async def test_get_booking_found(supabase_store, mock_supabase_client):
    """Test getting booking by ID when found."""
    _, mock_table = mock_supabase_client
    mock_table.execute.return_value = MagicMock(data=[BOOKING_ROW])

    result = await supabase_store.get_booking("booking_123")

    assert result.id == "booking_123"
    assert result.time_start == "09:00"
    assert result.start_at == datetime(2030, 1, 7, 9, tzinfo=timezone.utc)
    mock_table.eq.assert_called_with("id", "booking_123")


@pytest.mark.asyncio
async def test_get_booking_not_found(supabase_store):
    """Test getting booking by ID when not found."""
    assert await supabase_store.get_booking("missing") is None


@pytest.mark.asyncio
async def test_list_active_bookings_filters_cancelled(supabase_store, mock_supabase_client):
    _, mock_table = mock_supabase_client
    mock_table.execute.return_value = MagicMock(data=[BOOKING_ROW])

    result = await supabase_store.list_active_bookings("provider-1", MONDAY)

    assert [b.id for b in result] == ["booking_123"]
    mock_table.neq.assert_called_once_with("status", "cancelled")
    mock_table.eq.assert_any_call("date", "2030-01-07")


@pytest.mark.asyncio
async def test_insert_booking_success(supabase_store, mock_supabase_client):
    """Test successful booking creation."""
    _, mock_table = mock_supabase_client
    mock_table.execute.return_value = MagicMock(data=[BOOKING_ROW])

    result = await supabase_store.insert_booking(make_candidate(MONDAY, "09:00", "10:00"))

    assert result.id == "booking_123"
    payload = mock_table.insert.call_args[0][0]
    assert payload["date"] == "2030-01-07"
    assert payload["start_at"] == "2030-01-07T09:00:00+00:00"
    assert payload["status"] == "upcoming"


@pytest.mark.asyncio
async def test_insert_booking_exclusion_violation(supabase_store, mock_supabase_client):
    """Overlap rejected by the database maps to ConflictError."""
    _, mock_table = mock_supabase_client
    mock_table.execute.side_effect = _api_error("23P01", "conflicting key value violates exclusion constraint")

    with pytest.raises(ConflictError):
        await supabase_store.insert_booking(make_candidate(MONDAY, "09:00", "10:00"))


@pytest.mark.asyncio
async def test_insert_booking_no_data(supabase_store):
    with pytest.raises(StorageError):
        await supabase_store.insert_booking(make_candidate(MONDAY, "09:00", "10:00"))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [httpx.ConnectError("connection refused"), _api_error("57014", "statement timeout")],
)
async def test_transient_errors(supabase_store, mock_supabase_client, error):
    """Timeouts and connection failures are retryable."""
    _, mock_table = mock_supabase_client
    mock_table.execute.side_effect = error

    with pytest.raises(TransientError):
        await supabase_store.list_elapsed_bookings(datetime(2030, 1, 7, tzinfo=timezone.utc))


@pytest.mark.asyncio
async def test_other_api_errors(supabase_store, mock_supabase_client):
    _, mock_table = mock_supabase_client
    mock_table.execute.side_effect = _api_error("42501", "permission denied")

    with pytest.raises(StorageError) as exc_info:
        await supabase_store.get_booking("booking_123")

    assert not isinstance(exc_info.value, TransientError)


@pytest.mark.asyncio
async def test_update_status_is_conditional(supabase_store, mock_supabase_client):
    """Only bookings in an expected status are updated."""
    _, mock_table = mock_supabase_client
    mock_table.execute.return_value = MagicMock(data=[{**BOOKING_ROW, "status": "completed"}])

    result = await supabase_store.update_booking_status(
        "booking_123", BookingStatus.COMPLETED, expected=(BookingStatus.UPCOMING, BookingStatus.CONFIRMED)
    )

    assert result.status == "completed"
    assert mock_table.update.call_args[0][0]["status"] == "completed"
    mock_table.in_.assert_called_once_with("status", ["upcoming", "confirmed"])


@pytest.mark.asyncio
async def test_update_status_no_match(supabase_store):
    """Nothing updated when the booking left the expected status."""
    result = await supabase_store.update_booking_status(
        "booking_123", BookingStatus.COMPLETED, expected=(BookingStatus.UPCOMING,)
    )

    assert result is None


@pytest.mark.asyncio
async def test_list_elapsed_bookings_query(supabase_store, mock_supabase_client):
    _, mock_table = mock_supabase_client
    now = datetime(2030, 1, 7, 12, tzinfo=timezone.utc)

    await supabase_store.list_elapsed_bookings(now)

    mock_table.in_.assert_called_once_with("status", ["upcoming", "confirmed"])
    mock_table.lt.assert_called_once_with("end_at", "2030-01-07T12:00:00+00:00")


@pytest.mark.asyncio
async def test_save_and_get_availability(supabase_store, mock_supabase_client):
    _, mock_table = mock_supabase_client
    config = AvailabilityConfig(provider_id="provider-1", version=3)
    row = config.model_dump(mode="json")
    row["updated_at"] = "2030-01-01T08:00:00Z"
    mock_table.execute.return_value = MagicMock(data=[row])

    saved = await supabase_store.save_availability(config)
    loaded = await supabase_store.get_availability("provider-1")

    assert saved.version == 3
    assert loaded.updated_at == datetime(2030, 1, 1, 8, tzinfo=timezone.utc)
    assert mock_table.upsert.call_args[1]["on_conflict"] == "provider_id"


@pytest.mark.asyncio
async def test_booking_lock_is_passthrough(supabase_store):
    async with supabase_store.booking_lock("provider-1", MONDAY):
        pass


@pytest.mark.asyncio
async def test_update_times_is_conditional(supabase_store, mock_supabase_client):
    """A reschedule only applies while the booking is still open."""
    _, mock_table = mock_supabase_client
    mock_table.execute.return_value = MagicMock(
        data=[
            {
                **BOOKING_ROW,
                "time_start": "11:00:00",
                "time_end": "12:00:00",
                "start_at": "2030-01-07T11:00:00+00:00",
                "end_at": "2030-01-07T12:00:00+00:00",
            }
        ]
    )

    result = await supabase_store.update_booking_times(
        "booking_123",
        make_candidate(MONDAY, "11:00", "12:00"),
        expected=(BookingStatus.UPCOMING, BookingStatus.CONFIRMED),
    )

    assert result.time_start == "11:00"
    assert mock_table.update.call_args[0][0]["start_at"] == "2030-01-07T11:00:00+00:00"
    mock_table.in_.assert_called_once_with("status", ["upcoming", "confirmed"])


@pytest.mark.asyncio
async def test_update_times_no_match(supabase_store):
    """Nothing moved when the booking was completed or cancelled meanwhile."""
    result = await supabase_store.update_booking_times(
        "booking_123", make_candidate(MONDAY, "11:00", "12:00"), expected=(BookingStatus.UPCOMING,)
    )

    assert result is None


@pytest.mark.asyncio
async def test_close_releases_postgrest_session(supabase_store, mock_supabase_client):
    mock_client, _ = mock_supabase_client
    mock_client.postgrest.aclose = AsyncMock()

    await supabase_store.close()

    mock_client.postgrest.aclose.assert_awaited_once()
