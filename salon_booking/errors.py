# salon_booking/errors.py
"""
Error taxonomy of the booking engine.

Every error carries a kind, a stable code and (where it applies) the
offending field, so callers can render a localized message without
seeing implementation details.

Kinds:
- not_found           provider / event type / booking absent, no retry
- validation          bad input, no retry
- conflict            slot taken between read and commit, caller may re-query
- transient           storage busy / timeout, caller may retry
- invalid_transition  booking lifecycle does not allow the action
"""

from typing import Optional

NOT_FOUND = "not_found"
VALIDATION = "validation"
CONFLICT = "conflict"
TRANSIENT = "transient"
INVALID_TRANSITION = "invalid_transition"


class BookingEngineError(Exception):
    kind: str = VALIDATION
    code: str = "booking_engine_error"
    retryable: bool = False
    default_message: str = "Booking engine error"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "code": self.code,
            "field": self.field,
            "message": self.message,
            "retryable": self.retryable,
        }


# ── Not found ────────────────────────────────────────────────────────────


class NotFoundError(BookingEngineError):
    kind = NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class ProviderNotFound(NotFoundError):
    code = "provider_not_found"
    default_message = "Provider not found"


class EventTypeNotFound(NotFoundError):
    code = "event_type_not_found"
    default_message = "Event type not found"


class BookingNotFound(NotFoundError):
    code = "booking_not_found"
    default_message = "Booking not found"


# ── Validation ───────────────────────────────────────────────────────────


class ValidationError(BookingEngineError):
    kind = VALIDATION
    code = "validation_error"


class InvalidRange(ValidationError):
    code = "invalid_range"
    default_message = "Invalid date range"


class NoticeViolation(ValidationError):
    code = "notice_violation"
    default_message = "Slot starts sooner than the minimum booking notice allows"


class OutsideWorkingHours(ValidationError):
    code = "outside_working_hours"
    default_message = "Slot is outside the provider's working hours"


class InvalidTimezone(ValidationError):
    code = "invalid_timezone"
    default_message = "Unknown time zone"


class HostNotAvailable(ValidationError):
    code = "host_not_available"
    default_message = "The selected staff member does not offer this service"


# ── Conflict ─────────────────────────────────────────────────────────────


class SlotNoLongerAvailable(BookingEngineError):
    kind = CONFLICT
    code = "slot_no_longer_available"
    retryable = True
    default_message = "The selected slot is no longer available"


# ── Transient ────────────────────────────────────────────────────────────


class TransientError(BookingEngineError):
    kind = TRANSIENT
    code = "transient"
    retryable = True
    default_message = "Temporary failure, try again"


class TryAgain(TransientError):
    code = "try_again"


class ReservationBusy(TransientError):
    code = "reservation_busy"
    default_message = "Another reservation for this provider is in progress, try again"


class CalendarSyncFailed(TransientError):
    code = "calendar_sync_failed"
    default_message = "External calendar sync failed"


# ── Lifecycle ────────────────────────────────────────────────────────────


class InvalidTransition(BookingEngineError):
    kind = INVALID_TRANSITION
    code = "invalid_transition"
    default_message = "Booking status does not allow this action"


class AlreadyTerminal(InvalidTransition):
    code = "already_terminal"
    default_message = "Booking is already cancelled or rejected"


class BookingNotReschedulable(InvalidTransition):
    code = "booking_not_reschedulable"
    default_message = "Cancelled or rejected bookings cannot be rescheduled"
