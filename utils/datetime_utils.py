"""
Datetime utilities for consistent time handling across the scheduling engine.

Wall-clock times are exchanged as zero-padded 24-hour "HH:mm" strings and
slots as "HH:mm - HH:mm". Internally times are minutes since midnight.
Absolute instants are always timezone-aware datetimes.

All functions here are pure: they read no external state.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple, Union

from utils.exceptions import ValidationError

MINUTES_PER_DAY = 24 * 60
SLOT_SEPARATOR = " - "

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_TIME_24H_RE = re.compile(r"^(\d{1,2}):(\d{2})$", re.ASCII)
_TIME_12H_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])$", re.ASCII)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)


@dataclass(frozen=True)
class TimeParseResult:
    """Outcome of parsing a wall-clock time string."""

    ok: bool
    minutes: Optional[int] = None
    error: Optional[str] = None

    def unwrap(self) -> int:
        """Return minutes since midnight or raise ValidationError."""
        if not self.ok:
            raise ValidationError(self.error or "Invalid time")
        return self.minutes


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def parse_iso_datetime(iso_string: str) -> datetime:
    """
    Parse ISO format datetime string to timezone-aware datetime.
    Handles both 'Z' suffix and '+00:00' timezone formats.

    Args:
        iso_string: ISO format datetime string

    Returns:
        Timezone-aware datetime object

    Raises:
        ValidationError: If datetime string cannot be parsed
    """
    if not isinstance(iso_string, str):
        raise ValidationError(f"Invalid datetime string: {iso_string!r}")

    normalized = iso_string.replace("Z", "+00:00")

    try:
        dt = datetime.fromisoformat(normalized)
    except ValueError as e:
        raise ValidationError(f"Invalid datetime string: {iso_string}") from e

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso_string(dt: datetime) -> str:
    """
    Convert datetime to ISO format string.
    Naive datetimes are treated as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.isoformat()


def parse_time(value: str) -> TimeParseResult:
    """
    Parse a wall-clock time string into minutes since midnight.

    Accepts "H:mm" / "HH:mm" (24-hour) and "H:mm AM" / "H:mm PM" (12-hour).
    Never coerces: anything else is reported as a failed result.

    Args:
        value: Time string

    Returns:
        TimeParseResult with either ``minutes`` or ``error`` set
    """
    if not isinstance(value, str):
        return TimeParseResult(ok=False, error=f"Time must be a string, got {value!r}")

    text = value.strip()

    match = _TIME_12H_RE.match(text)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12:
            return TimeParseResult(ok=False, error=f"Hour out of range in {value!r}")
        if minute > 59:
            return TimeParseResult(ok=False, error=f"Minute out of range in {value!r}")
        if meridiem == "PM" and hour < 12:
            hour += 12
        if meridiem == "AM" and hour == 12:
            hour = 0
        return TimeParseResult(ok=True, minutes=hour * 60 + minute)

    match = _TIME_24H_RE.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23:
            return TimeParseResult(ok=False, error=f"Hour out of range in {value!r}")
        if minute > 59:
            return TimeParseResult(ok=False, error=f"Minute out of range in {value!r}")
        return TimeParseResult(ok=True, minutes=hour * 60 + minute)

    return TimeParseResult(ok=False, error=f"Unrecognised time format: {value!r}")


def time_to_minutes(value: str) -> int:
    """Convert a time string to minutes since midnight, raising ValidationError."""
    return parse_time(value).unwrap()


def minutes_to_time(minutes: int) -> str:
    """Format minutes since midnight as zero-padded "HH:mm"."""
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValidationError(f"Minutes out of day range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time_string(value: str) -> str:
    """
    Normalize a time string to zero-padded 24-hour "HH:mm".

    Handles both 12-hour (AM/PM) and 24-hour formats. Idempotent.

    Raises:
        ValidationError: If the string is not a recognisable time
    """
    return minutes_to_time(time_to_minutes(value))


def format_slot(start_minutes: int, end_minutes: int) -> str:
    """Format a minute interval as "HH:mm - HH:mm"."""
    return f"{minutes_to_time(start_minutes)}{SLOT_SEPARATOR}{minutes_to_time(end_minutes)}"


def parse_slot(slot: str) -> Tuple[int, int]:
    """
    Parse a "HH:mm - HH:mm" slot string into a (start, end) minute interval.

    Raises:
        ValidationError: If either side is malformed or end <= start
    """
    if not isinstance(slot, str) or SLOT_SEPARATOR.strip() not in slot:
        raise ValidationError(f"Invalid slot string: {slot!r}")

    start_str, _, end_str = slot.partition("-")
    start = time_to_minutes(start_str)
    end = time_to_minutes(end_str)
    if end <= start:
        raise ValidationError(f"Slot end must be after start: {slot!r}")
    return start, end


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a calendar date given as "YYYY-MM-DD".

    Raises:
        ValidationError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise ValidationError(f"Invalid date, expected YYYY-MM-DD: {value!r}")

    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


def weekday_name(day: date) -> str:
    """Lower-case English weekday name for a date, e.g. "monday"."""
    return WEEKDAYS[day.weekday()]


def combine(day: date, minutes: int, tz: tzinfo) -> datetime:
    """Build an aware datetime from a date and minutes since midnight."""
    return datetime.combine(day, time(minutes // 60, minutes % 60), tzinfo=tz)


def parse_slot_to_range(
    day: Union[str, date],
    slot: str,
    default_duration_minutes: int = 60,
    tz: tzinfo = timezone.utc,
) -> Tuple[datetime, datetime]:
    """
    Turn a single time or a "HH:mm - HH:mm" slot on a date into absolute instants.

    Args:
        day: Calendar date
        slot: "HH:mm - HH:mm", "HH:mm" or "H:mm AM/PM"
        default_duration_minutes: Used when the slot has no explicit end
        tz: Wall-clock timezone of the provider

    Returns:
        (start, end) as timezone-aware datetimes

    Raises:
        ValidationError: On malformed input, non-positive duration or end <= start
    """
    day = parse_date(day)

    if isinstance(slot, str) and "-" in slot:
        start_minutes, end_minutes = parse_slot(slot)
        return combine(day, start_minutes, tz), combine(day, end_minutes, tz)

    if default_duration_minutes <= 0:
        raise ValidationError(
            f"Duration must be positive, got {default_duration_minutes}"
        )

    start = combine(day, time_to_minutes(slot), tz)
    return start, start + timedelta(minutes=default_duration_minutes)
