# salon_booking/services/bookings/reservations.py
"""
Reservation Transactor.

create_booking / reschedule_booking run as one unit of work:
  1. per-provider lock (LocalProviderLocks / RedisProviderLocks)
  2. SERIALIZABLE transaction, provider row locked FOR UPDATE
  3. busy set recomputed for exactly the effective window
  4. notice, working hours and freedom verified
  5. write + audit row, commit
  6. after commit: domain event (failures only logged)

Any failure rolls back: no half-written booking survives.
Serialization failures and deadlocks surface as SlotNoLongerAvailable.
The write path is never retried here.
"""

import json
import logging
import uuid as uuid_lib
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

from redis import Redis
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ...errors import (
    BookingEngineError,
    BookingNotFound,
    NoticeViolation,
    OutsideWorkingHours,
    ProviderNotFound,
    SlotNoLongerAvailable,
    TryAgain,
)
from ...models import Attendees as DBAttendee
from ...models import BookingAudit as DBBookingAudit
from ...models import Bookings as DBBooking
from ...models import EventTypes as DBEventType
from ...models import Hosts as DBHost
from ...models import Providers as DBProvider
from ..events import emit_event
from ..slots.availability import bookable_blocks, get_event_type, get_host
from ..slots.busy import ExternalBusySource, merge_busy
from ..slots.calculator import SlotParams
from ..slots.config import BookingConfig, get_booking_config
from ..slots.intervals import Interval, any_overlap
from ..slots.rules import RuleStore, SqlRuleStore
from ..slots.timeutil import ensure_utc, load_zone, to_db
from .locks import LocalProviderLocks, ProviderLocks
from .status import RESCHEDULE, initial_status, next_status

logger = logging.getLogger(__name__)

# Used when the caller does not pass a lock registry
default_locks = LocalProviderLocks()

SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"


@dataclass(frozen=True)
class AttendeeInput:
    name: str
    email: str
    phone: Optional[str] = None
    time_zone: str = "Europe/Belgrade"
    locale: str = "sr"


# ── Transaction helpers ─────────────────────────────────────────────────


def _is_concurrency_error(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED):
        return True
    message = str(exc).lower()
    return "deadlock detected" in message or "could not serialize" in message


@contextmanager
def write_transaction(db: Session) -> Iterator[None]:
    """
    Run the block in one SERIALIZABLE transaction and commit it.

    BookingEngineError passes through after rollback; storage conflicts
    become SlotNoLongerAvailable, other storage failures TryAgain.
    """
    if not db.in_transaction():
        db.connection(execution_options={"isolation_level": "SERIALIZABLE"})

    try:
        yield
        db.commit()
    except BookingEngineError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Booking write rejected by constraint: {e.orig}")
        raise SlotNoLongerAvailable() from e
    except OperationalError as e:
        db.rollback()
        if _is_concurrency_error(e):
            logger.warning(f"Booking write lost a concurrent race: {e.orig}")
            raise SlotNoLongerAvailable() from e
        logger.error(f"Booking write failed: {e.orig}")
        raise TryAgain() from e
    except Exception:
        db.rollback()
        raise


def record_audit(db: Session, booking: DBBooking, event_type: str, payload: dict) -> DBBookingAudit:
    """Audit row, written in the caller's transaction."""
    entry = DBBookingAudit(
        booking_id=booking.id,
        event_type=event_type,
        payload=json.dumps(payload, default=str),
    )
    db.add(entry)
    return entry


def lock_provider(db: Session, provider_id: int) -> DBProvider:
    """Provider row, locked FOR UPDATE where the database supports it."""
    provider = (
        db.query(DBProvider)
        .filter(DBProvider.id == provider_id)
        .with_for_update()
        .first()
    )
    if not provider or not provider.is_active:
        raise ProviderNotFound(field="provider_id")
    return provider


def get_booking_by_uid(db: Session, uid: str, for_update: bool = False) -> DBBooking:
    query = db.query(DBBooking).filter(DBBooking.uid == uid)
    if for_update:
        query = query.with_for_update()
    booking = query.first()
    if not booking:
        raise BookingNotFound(field="uid")
    return booking


def booking_event_payload(booking: DBBooking) -> dict:
    return {
        "booking_uid": booking.uid,
        "provider_id": booking.provider_id,
        "event_type_id": booking.event_type_id,
        "host_id": booking.host_id,
        "status": booking.status,
        "start": ensure_utc(booking.start).isoformat(),
        "end": ensure_utc(booking.end).isoformat(),
    }


# ── Validation ──────────────────────────────────────────────────────────


def _check_notice(start: datetime, now: datetime, params: SlotParams) -> None:
    if start < now + params.notice:
        raise NoticeViolation(
            f"Bookings need at least {params.minimum_notice} minutes notice",
            field="start",
        )


def _check_working_hours(
    rule_store: RuleStore,
    provider_id: int,
    event_type: DBEventType,
    host: Optional[DBHost],
    slot: Interval,
    config: BookingConfig,
) -> None:
    blocks = bookable_blocks(
        rule_store, provider_id, event_type, host, slot.start, slot.end, config=config
    )
    if not any(b.contains(slot) for b in blocks):
        raise OutsideWorkingHours(field="start")


def _check_free(
    db: Session,
    provider_id: int,
    effective: Interval,
    rule_store: RuleStore,
    external: ExternalBusySource | None,
    host_id: Optional[int] = None,
    ignore_booking_id: Optional[int] = None,
) -> None:
    busy = merge_busy(
        db,
        provider_id,
        effective.start,
        effective.end,
        rule_store=rule_store,
        external=external,
        ignore_booking_id=ignore_booking_id,
        host_id=host_id,
    )
    if any_overlap(effective, busy):
        raise SlotNoLongerAvailable(field="start")


# ── Operations ──────────────────────────────────────────────────────────


def create_booking(
    db: Session,
    provider_id: int,
    event_type_id: int,
    start: datetime,
    attendee: AttendeeInput,
    now: datetime | None = None,
    notes: Optional[str] = None,
    locks: ProviderLocks | None = None,
    config: BookingConfig | None = None,
    rule_store: RuleStore | None = None,
    external: ExternalBusySource | None = None,
    redis: Redis | None = None,
    host_id: Optional[int] = None,
) -> DBBooking:
    """
    Reserve one slot.

    Args:
        db: Session, must not be inside a transaction yet
        provider_id: Provider ID
        event_type_id: Event type ID
        start: Requested UTC start
        attendee: Person the booking is for
        now: Reference time for minimum notice (request time when omitted)
        locks: Per-provider lock registry
        host_id: Staff member to book (None = the provider's own calendar);
                 conflicts are checked against that calendar only

    Returns:
        The committed booking (PENDING or ACCEPTED)

    Raises:
        ProviderNotFound, EventTypeNotFound, HostNotAvailable, NoticeViolation,
        OutsideWorkingHours, SlotNoLongerAvailable, ReservationBusy, TryAgain
    """
    config = config or get_booking_config()
    locks = locks or default_locks
    start = ensure_utc(start)
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    rule_store = rule_store or SqlRuleStore(db, config.default_time_zone)
    load_zone(attendee.time_zone)

    with locks.hold(provider_id):
        with write_transaction(db):
            lock_provider(db, provider_id)
            event_type = get_event_type(db, provider_id, event_type_id)
            host = get_host(db, event_type, host_id)
            params = SlotParams.from_event_type(event_type, config)

            slot = Interval(start, start + params.duration)
            effective = params.effective(start)

            _check_notice(start, now, params)
            _check_working_hours(rule_store, provider_id, event_type, host, slot, config)
            _check_free(db, provider_id, effective, rule_store, external, host_id)

            booking = DBBooking(
                uid=uuid_lib.uuid4().hex,
                provider_id=provider_id,
                event_type_id=event_type.id,
                host_id=host_id,
                title=f"{event_type.title} - {attendee.name}",
                start=to_db(slot.start),
                end=to_db(slot.end),
                effective_start=to_db(effective.start),
                effective_end=to_db(effective.end),
                status=initial_status(bool(event_type.requires_confirmation)),
                notes=notes,
            )
            booking.attendees.append(
                DBAttendee(
                    name=attendee.name,
                    email=attendee.email,
                    phone=attendee.phone,
                    time_zone=attendee.time_zone,
                    locale=attendee.locale,
                )
            )
            db.add(booking)
            db.flush()

            record_audit(db, booking, "booking_created", booking_event_payload(booking))

    logger.info(
        f"Booking {booking.uid} created for provider {provider_id} "
        f"at {slot.start.isoformat()} ({booking.status})"
    )
    emit_event(redis, "booking_created", booking_event_payload(booking))
    return booking


def reschedule_booking(
    db: Session,
    uid: str,
    new_start: datetime,
    now: datetime | None = None,
    locks: ProviderLocks | None = None,
    config: BookingConfig | None = None,
    rule_store: RuleStore | None = None,
    external: ExternalBusySource | None = None,
    redis: Redis | None = None,
    reason: Optional[str] = None,
) -> DBBooking:
    """
    Move a booking to a new start, in place.

    The booking's own interval is ignored when checking the new slot.
    On any failure the booking keeps its original interval.
    The booking stays with its host; an optional reason is stored and
    audited.

    Raises:
        BookingNotFound, BookingNotReschedulable, HostNotAvailable, NoticeViolation,
        OutsideWorkingHours, SlotNoLongerAvailable, ReservationBusy, TryAgain
    """
    config = config or get_booking_config()
    locks = locks or default_locks
    new_start = ensure_utc(new_start)
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    rule_store = rule_store or SqlRuleStore(db, config.default_time_zone)

    # Provider id is needed to pick the lock; the row is re-read under it
    provider_id = get_booking_by_uid(db, uid).provider_id
    db.rollback()

    with locks.hold(provider_id):
        with write_transaction(db):
            lock_provider(db, provider_id)
            booking = get_booking_by_uid(db, uid, for_update=True)
            next_status(booking.status, RESCHEDULE)

            event_type = get_event_type(db, provider_id, booking.event_type_id)
            host = get_host(db, event_type, booking.host_id)
            params = SlotParams.from_event_type(event_type, config)

            slot = Interval(new_start, new_start + params.duration)
            effective = params.effective(new_start)

            _check_notice(new_start, now, params)
            _check_working_hours(rule_store, provider_id, event_type, host, slot, config)
            _check_free(
                db, provider_id, effective, rule_store, external,
                host_id=booking.host_id, ignore_booking_id=booking.id,
            )

            previous_start = ensure_utc(booking.start)
            booking.start = to_db(slot.start)
            booking.end = to_db(slot.end)
            booking.effective_start = to_db(effective.start)
            booking.effective_end = to_db(effective.end)
            booking.previous_start = to_db(previous_start)
            booking.rescheduled = 1
            booking.reschedule_reason = reason
            booking.updated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

            payload = booking_event_payload(booking)
            payload["previous_start"] = previous_start.isoformat()
            if reason:
                payload["reason"] = reason
            record_audit(db, booking, "booking_rescheduled", payload)

    logger.info(
        f"Booking {uid} rescheduled from {previous_start.isoformat()} to {slot.start.isoformat()}"
    )
    emit_event(redis, "booking_rescheduled", payload)
    return booking
