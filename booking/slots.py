"""
Slot generation.

Turns a weekday's raw availability ranges plus session settings into the
ordered list of discrete "HH:mm - HH:mm" slots a client can book.
"""

from typing import Dict, Iterable, List, Mapping, Union

from models.availability import DayAvailability, SessionSettings, TimeRange
from utils.datetime_utils import format_slot, time_to_minutes
from utils.exceptions import ValidationError

RawRange = Union[TimeRange, Mapping[str, str]]


def _range_bounds(raw_range: RawRange) -> tuple:
    if isinstance(raw_range, Mapping):
        if "start" not in raw_range or "end" not in raw_range:
            raise ValidationError(f"Range needs start and end: {dict(raw_range)!r}")
        start, end = raw_range["start"], raw_range["end"]
    else:
        start, end = raw_range.start, raw_range.end
    return time_to_minutes(start), time_to_minutes(end)


def generate_slots(
    raw_ranges: Iterable[RawRange],
    duration_minutes: int,
    buffer_minutes: int = 0,
) -> List[str]:
    """
    Segment raw availability ranges into bookable slots.

    Each range is walked from its start in steps of ``duration + buffer``;
    a slot is emitted while it still ends within the range. Ranges are
    processed independently and in input order, so overlapping ranges can
    produce duplicate slots.

    Args:
        raw_ranges: Ranges with "HH:mm" ``start`` and ``end``
        duration_minutes: Session length, must be positive
        buffer_minutes: Gap after each session, must not be negative

    Returns:
        Slot strings, e.g. ["09:00 - 09:30", "09:30 - 10:00"]

    Raises:
        ValidationError: On non-positive duration, negative buffer or
            malformed times. Nothing is returned partially.
    """
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise ValidationError(f"Session duration must be a positive integer, got {duration_minutes!r}")
    if isinstance(buffer_minutes, bool) or not isinstance(buffer_minutes, int) or buffer_minutes < 0:
        raise ValidationError(f"Buffer must be a non-negative integer, got {buffer_minutes!r}")

    # Parse everything up front so a bad range fails before any output
    bounds = [_range_bounds(r) for r in raw_ranges]

    step = duration_minutes + buffer_minutes
    slots: List[str] = []

    for range_start, range_end in bounds:
        cursor = range_start
        while cursor + duration_minutes <= range_end:
            slots.append(format_slot(cursor, cursor + duration_minutes))
            cursor += step

    return slots


def generate_day_slots(day: DayAvailability, settings: SessionSettings) -> List[str]:
    """Slots for one weekday, empty when the day is disabled."""
    if not day.enabled:
        return []
    return generate_slots(day.raw_ranges, settings.duration_minutes, settings.buffer_minutes)


def generate_weekly_slots(
    days: Mapping[str, DayAvailability], settings: SessionSettings
) -> Dict[str, List[str]]:
    """Generated slots for every weekday in ``days``."""
    return {weekday: generate_day_slots(day, settings) for weekday, day in days.items()}
