"""Pydantic models for data validation and serialization."""

from .availability import (
    AvailabilityConfig,
    AvailabilityUpdate,
    DayAvailability,
    DayAvailabilityUpdate,
    SessionSettings,
    TimeRange,
    Weekday,
)
from .booking import Booking, BookingCreate, BookingStatus

__all__ = [
    "AvailabilityConfig",
    "AvailabilityUpdate",
    "Booking",
    "BookingCreate",
    "BookingStatus",
    "DayAvailability",
    "DayAvailabilityUpdate",
    "SessionSettings",
    "TimeRange",
    "Weekday",
]
