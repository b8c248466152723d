"""
Availability resolution.

Combines a provider's cached weekday slots with the bookings already made
on a date to produce the slots that are still free.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import List, Optional, Union

from booking.guard import is_slot_free
from booking.slots import generate_day_slots
from db.base import SchedulingStore
from models.availability import AvailabilityConfig, AvailabilityUpdate, DayAvailability
from utils.datetime_utils import combine, parse_date, parse_slot, utc_now, weekday_name
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__)


def apply_availability_update(
    provider_id: str,
    current: Optional[AvailabilityConfig],
    update: AvailabilityUpdate,
) -> AvailabilityConfig:
    """
    Merge a provider update into the current config and recompute every
    weekday's generated slots.

    Days missing from the update keep their raw ranges; all generated
    slots are rebuilt because session settings apply to every day.
    """
    config = current.model_copy(deep=True) if current else AvailabilityConfig(provider_id=provider_id)

    if update.session_settings is not None:
        config.session_settings = update.session_settings.model_copy()

    for weekday, day_update in update.days.items():
        config.days[weekday.value] = DayAvailability(
            enabled=day_update.enabled,
            raw_ranges=[r.model_copy() for r in day_update.raw_ranges],
        )

    for weekday, day in config.days.items():
        day.generated_slots = generate_day_slots(day, config.session_settings)

    config.version += 1
    config.updated_at = utc_now()
    return config


class AvailabilityResolver:
    """Read-only view of which generated slots are still free on a date."""

    def __init__(self, store: SchedulingStore, tz: tzinfo, lead_minutes: int = 0):
        self._store = store
        self._tz = tz
        self._lead = timedelta(minutes=lead_minutes)

    def cutoff(self, now: datetime) -> datetime:
        """Earliest start a client may still book at ``now``."""
        return now + self._lead

    async def get_available_slots(
        self,
        provider_id: str,
        day: Union[str, date],
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Free slots for a provider on a date, in chronological order.

        Args:
            provider_id: Provider ID
            day: Calendar date or "YYYY-MM-DD"
            now: When given, slots starting before now + lead time are dropped

        Returns:
            Slot strings; empty when the provider has no availability that day

        Raises:
            ValidationError: If ``day`` is malformed
        """
        day = parse_date(day)

        config = await self._store.get_availability(provider_id)
        if config is None:
            logger.debug(f"No availability configured for provider {provider_id}")
            return []

        candidates = config.slots_for(weekday_name(day))
        if not candidates:
            return []

        bookings = await self._store.list_active_bookings(provider_id, day)
        busy = [b for b in bookings if b.is_active]

        cutoff = self.cutoff(now) if now is not None else None

        free = []
        for slot in candidates:
            start, end = parse_slot(slot)
            if cutoff is not None and combine(day, start, self._tz) < cutoff:
                continue
            if is_slot_free(start, end, busy):
                free.append((start, end, slot))

        free.sort(key=lambda item: (item[0], item[1]))
        return [slot for _, _, slot in free]

