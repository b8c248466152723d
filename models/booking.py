"""Booking models for provider appointments."""

from datetime import date as date_type, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from utils.datetime_utils import normalize_time_string
from utils.exceptions import ValidationError


class BookingStatus(str, Enum):
    """Booking status."""

    UPCOMING = "upcoming"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that still hold their interval on the provider's calendar
ACTIVE_STATUSES = (
    BookingStatus.UPCOMING,
    BookingStatus.CONFIRMED,
    BookingStatus.COMPLETED,
)

# Statuses the lifecycle sweep may close out
OPEN_STATUSES = (BookingStatus.UPCOMING, BookingStatus.CONFIRMED)

# External transitions. COMPLETED is reached only through the lifecycle sweep.
ALLOWED_TRANSITIONS = {
    BookingStatus.UPCOMING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


def can_transition(current: str, target: str) -> bool:
    """Check whether an external action may move a booking to ``target``."""
    return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]


class _BookingTimes(BaseModel):
    """Shared wall-clock fields of a booking."""

    provider_id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    date: date_type
    time_start: str
    time_end: str
    start_at: datetime
    end_at: datetime

    @field_validator("time_start", "time_end")
    @classmethod
    def _normalize_times(cls, value: str) -> str:
        try:
            return normalize_time_string(value)
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def _check_interval(self):
        if self.time_start >= self.time_end:
            raise ValueError("time_start must be before time_end on the same date")
        if self.start_at >= self.end_at:
            raise ValueError("start_at must be before end_at")
        if self.start_at.tzinfo is None or self.end_at.tzinfo is None:
            raise ValueError("start_at/end_at must be timezone-aware")
        return self


class Booking(_BookingTimes):
    """Booking model."""

    id: Optional[str] = None
    status: BookingStatus = BookingStatus.UPCOMING
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "provider_id": "provider-uuid",
                "client_id": "client-uuid",
                "date": "2026-01-15",
                "time_start": "10:00",
                "time_end": "11:00",
                "start_at": "2026-01-15T10:00:00+01:00",
                "end_at": "2026-01-15T11:00:00+01:00",
                "status": "upcoming",
            }
        }

    @property
    def is_active(self) -> bool:
        return self.status in {s.value for s in ACTIVE_STATUSES}

    @property
    def slot(self) -> str:
        return f"{self.time_start} - {self.time_end}"


class BookingCreate(_BookingTimes):
    """Booking creation model."""

    status: BookingStatus = BookingStatus.UPCOMING
    notes: Optional[str] = None

    class Config:
        use_enum_values = True
