"""Storage adapters for availability configs and bookings."""

from .base import SchedulingStore
from .memory_store import InMemoryStore
from .supabase_client import SupabaseStore


async def create_store(settings) -> SchedulingStore:
    """Build the store selected by ``settings.storage_backend``."""
    if settings.storage_backend == "supabase":
        return await SupabaseStore.connect(settings.supabase_url, settings.supabase_key)
    return InMemoryStore()


__all__ = ["InMemoryStore", "SchedulingStore", "SupabaseStore", "create_store"]
