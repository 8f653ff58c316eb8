"""Tests for confirm / reject / cancel and reschedule requests."""

import json
from unittest.mock import MagicMock

import pytest

from salon_booking.errors import AlreadyTerminal, BookingNotFound, BookingNotReschedulable, InvalidTransition
from salon_booking.models import BookingAudit, Bookings, Providers
from salon_booking.services.bookings.lifecycle import (
    cancel_booking,
    confirm_booking,
    get_booking,
    reject_booking,
    request_reschedule,
)
from salon_booking.services.bookings.reservations import AttendeeInput, create_booking
from salon_booking.services.bookings.status import ACCEPTED, CANCELLED, PENDING, REJECTED
from salon_booking.services.events import P2P_QUEUE

from .conftest import utc

NOW = utc(2025, 3, 3, 7, 0)


@pytest.fixture
def pending(db, make_provider, locks):
    _, event_type = make_provider(requires_confirmation=True)
    return create_booking(
        db,
        event_type.provider_id,
        event_type.id,
        utc(2025, 3, 3, 10, 0),
        AttendeeInput(name="Ana", email="ana@example.com"),
        now=NOW,
        locks=locks,
    )


def audit_types(db, booking) -> list[str]:
    rows = db.query(BookingAudit).filter(BookingAudit.booking_id == booking.id).order_by(BookingAudit.id)
    return [r.event_type for r in rows]


class TestLifecycle:
    """Status transitions of an existing booking."""

    def test_confirm(self, db, pending, locks):
        booking = confirm_booking(db, pending.uid, locks=locks)

        assert booking.status == ACCEPTED
        assert audit_types(db, booking) == ["booking_created", "booking_confirmed"]

    def test_confirm_twice(self, db, pending, locks):
        confirm_booking(db, pending.uid, locks=locks)

        with pytest.raises(InvalidTransition) as exc_info:
            confirm_booking(db, pending.uid, locks=locks)
        assert exc_info.value.code == "invalid_transition"

    def test_reject_records_reason(self, db, pending, locks):
        booking = reject_booking(db, pending.uid, "Fully booked", locks=locks)

        assert booking.status == REJECTED
        assert booking.rejection_reason == "Fully booked"
        entry = db.query(BookingAudit).filter(BookingAudit.event_type == "booking_rejected").one()
        assert json.loads(entry.payload)["reason"] == "Fully booked"
        assert json.loads(entry.payload)["previous_status"] == PENDING

    def test_cancel_pending(self, db, pending, locks):
        booking = cancel_booking(db, pending.uid, "Sick", locks=locks)

        assert booking.status == CANCELLED
        assert booking.cancellation_reason == "Sick"

    def test_cancel_accepted(self, db, pending, locks):
        confirm_booking(db, pending.uid, locks=locks)
        booking = cancel_booking(db, pending.uid, locks=locks)
        assert booking.status == CANCELLED

    def test_confirm_after_cancel(self, db, pending, locks):
        cancel_booking(db, pending.uid, locks=locks)

        with pytest.raises(AlreadyTerminal):
            confirm_booking(db, pending.uid, locks=locks)

    def test_cancel_twice(self, db, pending, locks):
        cancel_booking(db, pending.uid, locks=locks)

        with pytest.raises(AlreadyTerminal):
            cancel_booking(db, pending.uid, locks=locks)
        assert audit_types(db, pending) == ["booking_created", "booking_cancelled"]

    def test_failed_transition_leaves_row_untouched(self, db, pending, locks):
        reject_booking(db, pending.uid, locks=locks)

        with pytest.raises(AlreadyTerminal):
            cancel_booking(db, pending.uid, "late", locks=locks)

        db.expire_all()
        stored = db.query(Bookings).filter(Bookings.uid == pending.uid).one()
        assert stored.status == REJECTED
        assert stored.cancellation_reason is None

    def test_unknown_booking(self, db, locks):
        with pytest.raises(BookingNotFound):
            cancel_booking(db, "missing", locks=locks)

    def test_get_booking(self, db, pending):
        assert get_booking(db, pending.uid).id == pending.id

    def test_event_pushed_after_commit(self, db, pending, locks):
        redis = MagicMock()
        confirm_booking(db, pending.uid, locks=locks, redis=redis)

        queue, raw = redis.rpush.call_args[0]
        event = json.loads(raw)
        assert queue == P2P_QUEUE
        assert event["type"] == "booking_confirmed"
        assert event["booking_uid"] == pending.uid
        assert event["status"] == ACCEPTED


class TestRequestReschedule:
    """The attendee asks for another time."""

    def test_returns_booking_page_link(self, db, pending):
        request = request_reschedule(db, pending.uid, "Can we move it?")

        provider_id = pending.provider_id
        assert request.booking_uid == pending.uid
        assert request.message == "Can we move it?"
        assert request.reschedule_url == (
            f"/{provider_id}/haircut-{provider_id}?reschedule_uid={pending.uid}"
        )

    def test_link_uses_provider_slug(self, db, pending):
        db.get(Providers, pending.provider_id).slug = "salon-ana"
        db.commit()

        request = request_reschedule(db, pending.uid)

        assert request.reschedule_url.startswith("/salon-ana/")

    def test_booking_left_unchanged_and_audited(self, db, pending):
        request_reschedule(db, pending.uid, "Later please")

        db.expire_all()
        booking = db.query(Bookings).filter(Bookings.uid == pending.uid).one()
        assert booking.status == PENDING
        assert booking.start == utc(2025, 3, 3, 10, 0).replace(tzinfo=None)
        assert booking.rescheduled == 0

        assert audit_types(db, booking) == ["booking_created", "reschedule_requested"]
        entry = db.query(BookingAudit).filter(BookingAudit.event_type == "reschedule_requested").one()
        assert json.loads(entry.payload)["message"] == "Later please"

    def test_cancelled_booking(self, db, pending, locks):
        cancel_booking(db, pending.uid, locks=locks)

        with pytest.raises(BookingNotReschedulable):
            request_reschedule(db, pending.uid)

    def test_unknown_booking(self, db):
        with pytest.raises(BookingNotFound):
            request_reschedule(db, "missing")

    def test_event_pushed(self, db, pending):
        redis = MagicMock()
        request_reschedule(db, pending.uid, "Later", redis=redis)

        _, raw = redis.rpush.call_args[0]
        event = json.loads(raw)
        assert event["type"] == "reschedule_requested"
        assert event["message"] == "Later"
