# salon_booking/services/bookings/status.py
"""
Booking State Machine.

PENDING  → ACCEPTED   confirm
PENDING  → REJECTED   reject
PENDING | ACCEPTED → CANCELLED   cancel
PENDING | ACCEPTED → same status, new interval   reschedule

REJECTED and CANCELLED are terminal.
"""

from ...errors import AlreadyTerminal, BookingNotReschedulable, InvalidTransition

PENDING = "PENDING"
ACCEPTED = "ACCEPTED"
REJECTED = "REJECTED"
CANCELLED = "CANCELLED"

ALL_STATUSES = (PENDING, ACCEPTED, REJECTED, CANCELLED)
ACTIVE_STATUSES = (PENDING, ACCEPTED)
TERMINAL_STATUSES = (REJECTED, CANCELLED)

CONFIRM = "confirm"
REJECT = "reject"
CANCEL = "cancel"
RESCHEDULE = "reschedule"

_TRANSITIONS = {
    CONFIRM: {PENDING: ACCEPTED},
    REJECT: {PENDING: REJECTED},
    CANCEL: {PENDING: CANCELLED, ACCEPTED: CANCELLED},
    RESCHEDULE: {PENDING: PENDING, ACCEPTED: ACCEPTED},
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def initial_status(requires_confirmation: bool) -> str:
    return PENDING if requires_confirmation else ACCEPTED


def next_status(current: str, action: str) -> str:
    """
    Resolve the status an action leads to, or raise.

    Raises:
        BookingNotReschedulable: reschedule of a terminal booking
        AlreadyTerminal: any other action on a terminal booking
        InvalidTransition: action not allowed from the current status
    """
    if action not in _TRANSITIONS:
        raise ValueError(f"Unknown booking action: {action}")

    if is_terminal(current):
        if action == RESCHEDULE:
            raise BookingNotReschedulable(
                f"Booking is {current} and cannot be rescheduled", field="status"
            )
        raise AlreadyTerminal(f"Booking is already {current}", field="status")

    target = _TRANSITIONS[action].get(current)
    if target is None:
        raise InvalidTransition(f"Cannot {action} a booking in status {current}", field="status")
    return target
