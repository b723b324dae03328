from enum import Enum
from typing import Optional


class ReasonCode(str, Enum):
    OUTSIDE_HOURS = "outside_hours"
    STAFF_HOLIDAY = "staff_holiday"
    SLOT_FULL = "slot_full"
    OVERLAP = "overlap"
    UNKNOWN_STAFF = "unknown_staff"
    UNKNOWN_SERVICE = "unknown_service"
    UNKNOWN_BOOKING = "unknown_booking"
    INVALID_TRANSITION = "invalid_transition"


class BookingEngineError(Exception):
    """Base class for everything the scheduling engine raises on purpose."""
    pass


class BookingValidationError(BookingEngineError):
    """
    A proposed booking (or change) breaks a scheduling rule.
    Always recoverable: the caller should re-prompt with fresh availability.
    """

    def __init__(self, reason: ReasonCode, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason.value
        super().__init__(f"{reason.value}: {self.message}")


class PersistenceError(BookingEngineError):
    """The persistence gateway could not be reached or returned an error."""
    pass


class CommitError(PersistenceError):
    """
    A booking write failed. Not retried here; the caller owns retry policy.
    """

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Commit failed: {cause}")


class SubscriptionError(BookingEngineError):
    """The change-notification feed lost its connection."""
    pass
