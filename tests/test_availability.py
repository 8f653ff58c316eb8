"""Tests for get_slots() against the database."""

from datetime import date, timedelta
from unittest.mock import MagicMock, patch

import pytest
from redis import RedisError
from sqlalchemy.exc import OperationalError

from salon_booking.errors import EventTypeNotFound, HostNotAvailable, InvalidRange, ProviderNotFound, TryAgain
from salon_booking.models import Bookings, DateHoursOverrides, ExternalBusyIntervals, Hosts, OutOfOffice, Providers
from salon_booking.services.slots import availability
from salon_booking.services.slots.availability import get_slots
from salon_booking.services.slots.intervals import Interval
from salon_booking.services.slots.redis_store import WorkingHoursRedisStore

from .conftest import MON_FRI, add_host, utc

# Monday 2025-03-03 in Europe/Belgrade (UTC+1)
DAY_START = utc(2025, 3, 2, 23, 0)
DAY_END = utc(2025, 3, 3, 23, 0)
NOW = utc(2025, 3, 3, 7, 0)  # 08:00 local


class TestGetSlots:
    """Slot query over rules, bookings and blocks stored in the database."""

    def test_plain_working_day(self, db, make_provider):
        provider, event_type = make_provider()
        slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))

        assert slots[0] == utc(2025, 3, 3, 9, 0)  # 10:00 local, notice applied
        assert slots[-1] == utc(2025, 3, 3, 15, 30)  # 16:30 local
        assert len(slots) == 14

    def test_same_inputs_same_result(self, db, make_provider):
        provider, event_type = make_provider()
        first = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))
        second = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))
        assert first == second

    def test_weekend_is_empty(self, db, make_provider):
        provider, event_type = make_provider()
        saturday = utc(2025, 3, 7, 23, 0)
        assert list(get_slots(db, provider.id, event_type.id, saturday, saturday + timedelta(days=2), now=NOW)) == []

    def test_out_of_office_removes_slots(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        db.add(OutOfOffice(
            uuid="ooo-1",
            provider_id=provider.id,
            start=utc(2025, 3, 3, 11, 0).replace(tzinfo=None),
            end=utc(2025, 3, 3, 16, 0).replace(tzinfo=None),
        ))
        db.commit()

        slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))
        assert slots[-1] == utc(2025, 3, 3, 10, 30)
        assert utc(2025, 3, 3, 11, 0) not in slots

    def test_disabled_out_of_office_is_ignored(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        db.add(OutOfOffice(
            uuid="ooo-off",
            provider_id=provider.id,
            start=utc(2025, 3, 3, 8, 0).replace(tzinfo=None),
            end=utc(2025, 3, 3, 16, 0).replace(tzinfo=None),
            enabled=0,
        ))
        db.commit()

        slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))
        assert len(slots) == 16

    def test_external_busy_removes_slot(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        db.add(ExternalBusyIntervals(
            provider_id=provider.id,
            start=utc(2025, 3, 3, 9, 0).replace(tzinfo=None),
            end=utc(2025, 3, 3, 9, 30).replace(tzinfo=None),
        ))
        db.commit()

        slots = get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW)
        assert utc(2025, 3, 3, 9, 0) not in slots
        assert utc(2025, 3, 3, 9, 30) in slots

    def test_date_hours_override(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        schedule_id = event_type.schedule_id
        db.add(DateHoursOverrides(schedule_id=schedule_id, date="2025-03-03", start_time="12:00", end_time="13:00"))
        db.commit()

        slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))
        assert slots == [utc(2025, 3, 3, 11, 0), utc(2025, 3, 3, 11, 30)]

    def test_date_hours_open_a_day_off(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        db.add(DateHoursOverrides(
            schedule_id=event_type.schedule_id, date="2025-03-08", start_time="10:00", end_time="11:00"
        ))
        db.commit()

        saturday = utc(2025, 3, 7, 23, 0)
        slots = list(get_slots(db, provider.id, event_type.id, saturday, saturday + timedelta(days=1), now=NOW))
        assert slots == [utc(2025, 3, 8, 9, 0), utc(2025, 3, 8, 9, 30)]

    def test_blocking_date_hours(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        db.add(DateHoursOverrides(
            schedule_id=event_type.schedule_id, date="2025-03-03", start_time="00:00", end_time="00:00"
        ))
        db.commit()

        assert list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW)) == []

    def test_split_shift(self, db, make_provider):
        provider, event_type = make_provider(
            notice=0,
            rules=[([1], "09:00", "12:00"), ([1], "14:00", "16:00")],
        )
        slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))
        assert utc(2025, 3, 3, 10, 30) in slots  # 11:30 local
        assert utc(2025, 3, 3, 11, 0) not in slots  # 12:00 local
        assert utc(2025, 3, 3, 13, 0) in slots  # 14:00 local
        assert len(slots) == 10

    def test_window_across_dst_change(self, db, make_provider):
        """Week of the spring change: 09:00 local is 08:00Z before, 07:00Z after."""
        provider, event_type = make_provider(notice=0)
        start = utc(2025, 3, 27, 23, 0)  # Friday 28th local midnight
        end = utc(2025, 3, 30, 22, 0)  # Monday 31st local midnight (CEST)

        slots = list(get_slots(db, provider.id, event_type.id, start, end + timedelta(days=1), now=NOW))
        assert slots[0] == utc(2025, 3, 28, 8, 0)
        assert utc(2025, 3, 31, 7, 0) in slots
        assert utc(2025, 3, 31, 8, 0) in slots


class TestGetSlotsErrors:
    """Validation and not-found paths of the slot query."""

    def test_unknown_provider(self, db):
        with pytest.raises(ProviderNotFound):
            get_slots(db, 999, 1, DAY_START, DAY_END, now=NOW)

    def test_inactive_provider(self, db, make_provider):
        provider, event_type = make_provider()
        db.get(Providers, provider.id).is_active = 0
        db.commit()

        with pytest.raises(ProviderNotFound):
            get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW)

    def test_event_type_of_other_provider(self, db, make_provider):
        provider, _ = make_provider(name="A")
        _, other_event_type = make_provider(name="B")

        with pytest.raises(EventTypeNotFound) as exc_info:
            get_slots(db, provider.id, other_event_type.id, DAY_START, DAY_END, now=NOW)
        assert exc_info.value.field == "event_type_id"

    def test_reversed_range(self, db, make_provider):
        provider, event_type = make_provider()
        with pytest.raises(InvalidRange):
            get_slots(db, provider.id, event_type.id, DAY_END, DAY_START, now=NOW)

    def test_empty_range_has_no_slots(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        at_ten = utc(2025, 3, 3, 9, 0)

        slots = get_slots(db, provider.id, event_type.id, at_ten, at_ten, now=NOW)

        assert list(slots) == []

    def test_range_too_long(self, db, make_provider):
        provider, event_type = make_provider()
        with pytest.raises(InvalidRange) as exc_info:
            get_slots(db, provider.id, event_type.id, DAY_START, DAY_START + timedelta(days=90), now=NOW)
        assert exc_info.value.code == "invalid_range"

    def test_storage_error_retried_then_try_again(self, db, make_provider):
        provider, event_type = make_provider()
        error = OperationalError("SELECT 1", {}, Exception("database is locked"))

        with patch.object(availability, "_compute_slots", side_effect=error) as compute:
            with pytest.raises(TryAgain) as exc_info:
                get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW)

        assert compute.call_count == 3
        assert exc_info.value.retryable is True

    def test_storage_error_recovers_on_retry(self, db, make_provider):
        provider, event_type = make_provider()
        error = OperationalError("SELECT 1", {}, Exception("database is locked"))
        real = availability._compute_slots
        calls = []

        def flaky(*args):
            calls.append(args)
            if len(calls) == 1:
                raise error
            return real(*args)

        with patch.object(availability, "_compute_slots", side_effect=flaky):
            slots = get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW)

        assert len(calls) == 2
        assert len(list(slots)) == 14


class TestWorkingHoursCache:
    """get_slots() reads and fills the Redis working hours cache."""

    def test_misses_are_computed_and_stored(self, db, make_provider):
        provider, event_type = make_provider()
        redis = MagicMock()

        with patch.object(WorkingHoursRedisStore, "mget_day_blocks", return_value={}) as mget, \
                patch.object(WorkingHoursRedisStore, "store_multiple_days") as store:
            slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW, redis=redis))

        assert len(slots) == 14
        mget.assert_called_once()
        stored = store.call_args[0][1]
        assert stored[date(2025, 3, 3)] == [
            Interval(utc(2025, 3, 3, 8, 0), utc(2025, 3, 3, 16, 0))
        ]

    def test_cached_blocks_are_used(self, db, make_provider):
        provider, event_type = make_provider(notice=0)
        monday = DAY_END.date()
        cached = {monday: [Interval(utc(2025, 3, 3, 12, 0), utc(2025, 3, 3, 13, 0))]}

        with patch.object(WorkingHoursRedisStore, "mget_day_blocks", return_value=cached), \
                patch.object(WorkingHoursRedisStore, "store_multiple_days") as store:
            slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW, redis=MagicMock()))

        assert slots == [utc(2025, 3, 3, 12, 0), utc(2025, 3, 3, 12, 30)]
        assert monday not in store.call_args[0][1]

    def test_cache_failure_falls_back(self, db, make_provider):
        provider, event_type = make_provider()

        with patch.object(WorkingHoursRedisStore, "mget_day_blocks", side_effect=RedisError("down")):
            slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW, redis=MagicMock()))

        assert len(slots) == 14


class TestHostSlots:
    """get_slots() for one staff member."""

    def test_host_booking_hides_slot_for_that_host_only(self, db, make_provider):
        provider, event_type = make_provider()
        mila = add_host(db, event_type, "Mila")
        db.add(Bookings(
            uid="mila-10",
            provider_id=provider.id,
            event_type_id=event_type.id,
            host_id=mila.id,
            title="Haircut",
            start=utc(2025, 3, 3, 9, 0).replace(tzinfo=None),
            end=utc(2025, 3, 3, 9, 30).replace(tzinfo=None),
            effective_start=utc(2025, 3, 3, 9, 0).replace(tzinfo=None),
            effective_end=utc(2025, 3, 3, 9, 30).replace(tzinfo=None),
            status="ACCEPTED",
        ))
        db.commit()

        host_slots = list(get_slots(
            db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW, host_id=mila.id
        ))
        own_slots = list(get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW))

        assert utc(2025, 3, 3, 9, 0) not in host_slots
        assert len(host_slots) == 13
        assert utc(2025, 3, 3, 9, 0) in own_slots
        assert len(own_slots) == 14

    def test_host_hours_bounded_by_event_type_hours(self, db, make_provider):
        provider, event_type = make_provider()
        late = add_host(db, event_type, "Late", rules=[(MON_FRI, "12:00", "20:00")])

        slots = list(get_slots(
            db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW, host_id=late.id
        ))

        assert slots[0] == utc(2025, 3, 3, 11, 0)  # 12:00 local
        assert slots[-1] == utc(2025, 3, 3, 15, 30)  # 16:30 local, salon closes at 17:00
        assert len(slots) == 10

    def test_host_not_offering_event_type(self, db, make_provider):
        provider, event_type = make_provider()
        outsider = Hosts(provider_id=provider.id, name="Outsider", email="out@example.com", is_active=1)
        db.add(outsider)
        db.commit()

        with pytest.raises(HostNotAvailable) as exc_info:
            get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW, host_id=outsider.id)
        assert exc_info.value.field == "host_id"

    def test_inactive_host(self, db, make_provider):
        provider, event_type = make_provider()
        mila = add_host(db, event_type, "Mila")
        mila.is_active = 0
        db.commit()

        with pytest.raises(HostNotAvailable):
            get_slots(db, provider.id, event_type.id, DAY_START, DAY_END, now=NOW, host_id=mila.id)
