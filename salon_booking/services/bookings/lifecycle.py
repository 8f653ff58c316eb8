# salon_booking/services/bookings/lifecycle.py
"""
Status transitions after a booking exists: confirm, reject, cancel.
Also the attendee's request for a new time, which changes no status.

Each runs under the provider's lock in one transaction with its audit row,
so it cannot interleave with a reschedule of the same booking.
Bookings are never deleted; cancellation is a status change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from redis import Redis
from sqlalchemy.orm import Session

from ...models import Bookings as DBBooking
from ..events import emit_event
from .locks import ProviderLocks
from .reservations import (
    default_locks,
    booking_event_payload,
    get_booking_by_uid,
    record_audit,
    write_transaction,
)
from .status import CANCEL, CONFIRM, REJECT, RESCHEDULE, next_status

logger = logging.getLogger(__name__)

_EVENT_NAMES = {
    CONFIRM: "booking_confirmed",
    REJECT: "booking_rejected",
    CANCEL: "booking_cancelled",
}


def get_booking(db: Session, uid: str) -> DBBooking:
    """Booking by its external uid, or BookingNotFound."""
    return get_booking_by_uid(db, uid)


def _transition(
    db: Session,
    uid: str,
    action: str,
    reason: Optional[str],
    locks: ProviderLocks | None,
    redis: Redis | None,
) -> DBBooking:
    locks = locks or default_locks

    provider_id = get_booking_by_uid(db, uid).provider_id
    db.rollback()

    with locks.hold(provider_id):
        with write_transaction(db):
            booking = get_booking_by_uid(db, uid, for_update=True)
            previous = booking.status
            booking.status = next_status(previous, action)

            if action == CANCEL:
                booking.cancellation_reason = reason
            elif action == REJECT:
                booking.rejection_reason = reason
            booking.updated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

            payload = booking_event_payload(booking)
            payload["previous_status"] = previous
            if reason:
                payload["reason"] = reason
            record_audit(db, booking, _EVENT_NAMES[action], payload)

    logger.info(f"Booking {uid}: {previous} → {booking.status} ({action})")
    emit_event(redis, _EVENT_NAMES[action], payload)
    return booking


def confirm_booking(
    db: Session,
    uid: str,
    locks: ProviderLocks | None = None,
    redis: Redis | None = None,
) -> DBBooking:
    """PENDING → ACCEPTED."""
    return _transition(db, uid, CONFIRM, None, locks, redis)


def reject_booking(
    db: Session,
    uid: str,
    reason: Optional[str] = None,
    locks: ProviderLocks | None = None,
    redis: Redis | None = None,
) -> DBBooking:
    """PENDING → REJECTED, reason recorded."""
    return _transition(db, uid, REJECT, reason, locks, redis)


def cancel_booking(
    db: Session,
    uid: str,
    reason: Optional[str] = None,
    locks: ProviderLocks | None = None,
    redis: Redis | None = None,
) -> DBBooking:
    """PENDING / ACCEPTED → CANCELLED, reason recorded. Frees the slot."""
    return _transition(db, uid, CANCEL, reason, locks, redis)


@dataclass(frozen=True)
class RescheduleRequest:
    booking_uid: str
    reschedule_url: str
    message: Optional[str] = None


def reschedule_url(booking: DBBooking) -> str:
    """Booking page path that reschedules this booking instead of creating one."""
    page = booking.provider.slug or str(booking.provider_id)
    return f"/{page}/{booking.event_type.slug}?reschedule_uid={booking.uid}"


def request_reschedule(
    db: Session,
    uid: str,
    message: Optional[str] = None,
    redis: Redis | None = None,
) -> RescheduleRequest:
    """
    Attendee asks for another time.

    The booking keeps its slot and status. The request is audited and
    published as reschedule_requested so the provider can be told.

    Raises:
        BookingNotFound, BookingNotReschedulable
    """
    with write_transaction(db):
        booking = get_booking_by_uid(db, uid)
        next_status(booking.status, RESCHEDULE)

        payload = booking_event_payload(booking)
        if message:
            payload["message"] = message
        record_audit(db, booking, "reschedule_requested", payload)
        request = RescheduleRequest(
            booking_uid=uid,
            reschedule_url=reschedule_url(booking),
            message=message,
        )

    logger.info(f"Booking {uid}: reschedule requested")
    emit_event(redis, "reschedule_requested", payload)
    return request
