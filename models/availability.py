"""Weekly availability models for providers."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from utils.datetime_utils import WEEKDAYS, normalize_time_string
from utils.exceptions import ValidationError


class Weekday(str, Enum):
    """Days of the week, Monday first."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


# Weekend days start disabled, matching a typical Mon-Fri practice
DEFAULT_ENABLED_DAYS = {day.value for day in Weekday} - {"saturday", "sunday"}


class TimeRange(BaseModel):
    """A contiguous block of wall-clock availability."""

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: str) -> str:
        try:
            return normalize_time_string(value)
        except ValidationError as e:
            raise ValueError(str(e)) from e


class SessionSettings(BaseModel):
    """Provider-wide session length and gap between sessions."""

    duration_minutes: int = Field(default=60, gt=0, le=24 * 60)
    buffer_minutes: int = Field(default=15, ge=0, le=24 * 60)


class DayAvailability(BaseModel):
    """Availability for one weekday."""

    enabled: bool = True
    raw_ranges: List[TimeRange] = Field(default_factory=list)
    generated_slots: List[str] = Field(default_factory=list)


class DayAvailabilityUpdate(BaseModel):
    """Provider input for one weekday. Generated slots are never accepted."""

    enabled: bool = True
    raw_ranges: List[TimeRange] = Field(default_factory=list)


def _default_days() -> Dict[str, DayAvailability]:
    return {
        day: DayAvailability(enabled=day in DEFAULT_ENABLED_DAYS) for day in WEEKDAYS
    }


class AvailabilityConfig(BaseModel):
    """
    Weekly availability owned by a single provider.

    ``generated_slots`` of each day is a derived view of ``raw_ranges`` and
    ``session_settings``; it is recomputed on every save.
    """

    provider_id: str
    days: Dict[str, DayAvailability] = Field(default_factory=_default_days)
    session_settings: SessionSettings = Field(default_factory=SessionSettings)
    version: int = 0
    updated_at: Optional[datetime] = None

    @field_validator("days")
    @classmethod
    def _fill_missing_days(cls, days: Dict[str, DayAvailability]) -> Dict[str, DayAvailability]:
        unknown = set(days) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekdays: {', '.join(sorted(unknown))}")
        filled = _default_days()
        filled.update(days)
        return filled

    def slots_for(self, weekday: str) -> List[str]:
        """Generated slots for a weekday, empty when the day is disabled."""
        day = self.days.get(weekday)
        if day is None or not day.enabled:
            return []
        return list(day.generated_slots)

    class Config:
        json_schema_extra = {
            "example": {
                "provider_id": "provider-uuid",
                "days": {
                    "monday": {
                        "enabled": True,
                        "raw_ranges": [{"start": "09:00", "end": "12:00"}],
                        "generated_slots": ["09:00 - 10:00", "10:15 - 11:15"],
                    }
                },
                "session_settings": {"duration_minutes": 60, "buffer_minutes": 15},
            }
        }


class AvailabilityUpdate(BaseModel):
    """Provider input for saving weekly availability."""

    days: Dict[Weekday, DayAvailabilityUpdate] = Field(default_factory=dict)
    session_settings: Optional[SessionSettings] = None
