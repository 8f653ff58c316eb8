"""Shared fixtures: in-memory database, demo provider factory, API client."""

import json
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from salon_booking.config import Settings
from salon_booking.database import create_db_engine, init_db, make_session_factory
from salon_booking.main import create_app
from salon_booking.models import AvailabilityRules, EventTypes, Hosts, Providers, Schedules
from salon_booking.services.bookings.locks import LocalProviderLocks

BELGRADE = "Europe/Belgrade"
MON_FRI = [1, 2, 3, 4, 5]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def create_provider(
    db,
    name: str = "Salon",
    length: int = 30,
    slot_interval: int | None = 30,
    notice: int = 120,
    before: int = 0,
    after: int = 0,
    requires_confirmation: bool = False,
    rules: list[tuple[list[int], str, str]] | None = None,
    time_zone: str = BELGRADE,
):
    """
    Provider with a Mon–Fri 09:00–17:00 Belgrade schedule and one event
    type. Returns (provider, event_type), committed.
    """
    provider = Providers(name=name, time_zone=time_zone, is_active=1)
    db.add(provider)
    db.flush()

    schedule = Schedules(provider_id=provider.id, name="Default", time_zone=time_zone, is_default=1)
    for days, start, end in rules or [(MON_FRI, "09:00", "17:00")]:
        schedule.rules.append(AvailabilityRules(days=json.dumps(days), start_time=start, end_time=end))
    db.add(schedule)
    db.flush()

    event_type = EventTypes(
        provider_id=provider.id,
        schedule_id=schedule.id,
        title="Haircut",
        slug=f"haircut-{provider.id}",
        length_minutes=length,
        slot_interval=slot_interval,
        minimum_booking_notice=notice,
        before_event_buffer=before,
        after_event_buffer=after,
        requires_confirmation=1 if requires_confirmation else 0,
        is_active=1,
    )
    db.add(event_type)
    db.commit()
    return provider, event_type


def add_host(
    db,
    event_type,
    name: str = "Mila",
    rules: list[tuple[list[int], str, str]] | None = None,
):
    """
    Staff member who offers the event type. With rules, the host gets a
    schedule of their own; otherwise they follow the event type's hours.
    """
    host = Hosts(
        provider_id=event_type.provider_id,
        name=name,
        email=f"{name.lower()}@example.com",
        is_active=1,
    )
    if rules:
        schedule = Schedules(provider_id=event_type.provider_id, name=f"{name} hours", time_zone=BELGRADE)
        for days, start, end in rules:
            schedule.rules.append(AvailabilityRules(days=json.dumps(days), start_time=start, end_time=end))
        db.add(schedule)
        db.flush()
        host.schedule_id = schedule.id

    host.event_types.append(event_type)
    db.add(host)
    db.commit()
    return host


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def locks():
    return LocalProviderLocks(blocking_timeout=5)


@pytest.fixture
def make_provider(db):
    """Factory fixture around create_provider() bound to the db session."""

    def _make(**kwargs):
        return create_provider(db, **kwargs)

    return _make


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, database_url="sqlite://", redis_url=None, lock_backend="local")


@pytest.fixture
def client(test_settings, session_factory, locks):
    """Test client sharing the in-memory database with the db fixture."""
    app = create_app(settings=test_settings, session_factory=session_factory, locks=locks)
    with TestClient(app) as test_client:
        yield test_client
