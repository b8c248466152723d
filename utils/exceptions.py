"""
Custom exception classes for the scheduling engine.
Provides specific error types instead of generic exceptions.
"""

from typing import Iterable, Optional


class SchedulingError(Exception):
    """Base exception for scheduling operations."""

    pass


class ValidationError(SchedulingError):
    """Raised when input validation fails (malformed date/time, bad duration)."""

    pass


class ConflictError(SchedulingError):
    """Raised when a booking write would overlap an existing booking."""

    def __init__(self, message: str, conflicting_ids: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.conflicting_ids = [i for i in (conflicting_ids or []) if i]


class NotFoundError(SchedulingError):
    """Raised when a requested record does not exist."""

    pass


class AvailabilityNotFoundError(NotFoundError):
    """Raised when a provider has no availability configuration."""

    pass


class BookingNotFoundError(NotFoundError):
    """Raised when a booking is not found."""

    pass


class InvalidTransitionError(SchedulingError):
    """Raised when a booking status change is not allowed."""

    pass


class StorageError(SchedulingError):
    """Base exception for storage operations."""

    pass


class TransientError(StorageError):
    """Raised when storage times out or is unavailable. Callers may retry."""

    pass
