"""Tests for the booking state machine."""

import pytest

from salon_booking.errors import AlreadyTerminal, BookingNotReschedulable, InvalidTransition
from salon_booking.services.bookings.status import (
    ACCEPTED,
    CANCEL,
    CANCELLED,
    CONFIRM,
    PENDING,
    REJECT,
    REJECTED,
    RESCHEDULE,
    initial_status,
    is_terminal,
    next_status,
)


class TestNextStatus:
    """Tests for next_status()."""

    @pytest.mark.parametrize(
        "current,action,expected",
        [
            (PENDING, CONFIRM, ACCEPTED),
            (PENDING, REJECT, REJECTED),
            (PENDING, CANCEL, CANCELLED),
            (ACCEPTED, CANCEL, CANCELLED),
            (PENDING, RESCHEDULE, PENDING),
            (ACCEPTED, RESCHEDULE, ACCEPTED),
        ],
    )
    def test_allowed(self, current, action, expected):
        assert next_status(current, action) == expected

    @pytest.mark.parametrize("action", [CONFIRM, REJECT])
    def test_accepted_cannot_be_decided_again(self, action):
        with pytest.raises(InvalidTransition) as exc_info:
            next_status(ACCEPTED, action)
        assert exc_info.value.code == "invalid_transition"

    @pytest.mark.parametrize("current", [CANCELLED, REJECTED])
    @pytest.mark.parametrize("action", [CONFIRM, REJECT, CANCEL])
    def test_terminal(self, current, action):
        with pytest.raises(AlreadyTerminal):
            next_status(current, action)

    @pytest.mark.parametrize("current", [CANCELLED, REJECTED])
    def test_terminal_not_reschedulable(self, current):
        with pytest.raises(BookingNotReschedulable):
            next_status(current, RESCHEDULE)

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            next_status(PENDING, "archive")


def test_initial_status():
    assert initial_status(requires_confirmation=True) == PENDING
    assert initial_status(requires_confirmation=False) == ACCEPTED


def test_is_terminal():
    assert is_terminal(CANCELLED)
    assert is_terminal(REJECTED)
    assert not is_terminal(PENDING)
    assert not is_terminal(ACCEPTED)
