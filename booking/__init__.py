"""Scheduling engine: slot generation, availability, guarded booking writes."""

from .availability import AvailabilityResolver, apply_availability_update
from .guard import BookingGuard, find_conflicts, intervals_overlap
from .service import BookingService, ImportResult
from .slots import generate_slots, generate_weekly_slots

__all__ = [
    "AvailabilityResolver",
    "BookingGuard",
    "BookingService",
    "ImportResult",
    "apply_availability_update",
    "find_conflicts",
    "generate_slots",
    "generate_weekly_slots",
    "intervals_overlap",
]
