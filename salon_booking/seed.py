# salon_booking/seed.py
"""
Demo data: one provider, Mon–Fri 09:00–17:00 Europe/Belgrade, a 30 minute
event type and one out-of-office afternoon.

Every row is created or updated explicitly, keyed by a unique column
(provider slug, event type slug, out-of-office uuid), so seeding twice
leaves one copy of each.
"""

import json
import logging
from datetime import date, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .models import AvailabilityRules, EventTypes, OutOfOffice, Providers, Schedules
from .services.slots.timeutil import load_zone, to_db, to_utc

logger = logging.getLogger(__name__)

DEMO_PROVIDER_NAME = "Demo Salon"
DEMO_PROVIDER_SLUG = "demo-salon"
DEMO_TIME_ZONE = "Europe/Belgrade"
DEMO_EVENT_SLUG = "haircut-30"
DEMO_OUT_OF_OFFICE_UUID = "demo-out-of-office"
WEEKDAYS = [1, 2, 3, 4, 5]  # Mon–Fri, 0 = Sunday


def _next_friday(today: date) -> date:
    return today + timedelta(days=(4 - today.weekday()) % 7 or 7)


def seed_demo(db: Session, today: Optional[date] = None) -> dict:
    """
    Create or update the demo provider and its schedule.

    Returns:
        {"provider_id", "schedule_id", "event_type_id", "out_of_office_uuid"}
    """
    today = today or date.today()
    tz = load_zone(DEMO_TIME_ZONE)

    # --- provider ---
    provider = db.query(Providers).filter(Providers.slug == DEMO_PROVIDER_SLUG).first()
    if not provider:
        provider = Providers(
            name=DEMO_PROVIDER_NAME,
            slug=DEMO_PROVIDER_SLUG,
            time_zone=DEMO_TIME_ZONE,
            is_active=1,
        )
        db.add(provider)
        db.flush()
        logger.info(f"[SEED] Provider created (id={provider.id})")
    else:
        provider.name = DEMO_PROVIDER_NAME
        provider.time_zone = DEMO_TIME_ZONE
        provider.is_active = 1

    # --- default schedule with one rule ---
    schedule = db.query(Schedules).filter(
        Schedules.provider_id == provider.id,
        Schedules.is_default == 1,
    ).first()
    if not schedule:
        schedule = Schedules(
            provider_id=provider.id,
            name="Working hours",
            time_zone=DEMO_TIME_ZONE,
            is_default=1,
        )
        db.add(schedule)
        db.flush()

    schedule.rules = [
        AvailabilityRules(days=json.dumps(WEEKDAYS), start_time="09:00", end_time="17:00"),
    ]

    # --- event type ---
    event_type = db.query(EventTypes).filter(
        EventTypes.provider_id == provider.id,
        EventTypes.slug == DEMO_EVENT_SLUG,
    ).first()
    values = {
        "title": "Haircut",
        "length_minutes": 30,
        "before_event_buffer": 0,
        "after_event_buffer": 0,
        "minimum_booking_notice": 120,
        "slot_interval": 30,
        "requires_confirmation": 0,
        "is_active": 1,
        "schedule_id": schedule.id,
    }
    if event_type:
        for key, value in values.items():
            setattr(event_type, key, value)
    else:
        event_type = EventTypes(provider_id=provider.id, slug=DEMO_EVENT_SLUG, **values)
        db.add(event_type)

    # --- out of office: next Friday afternoon ---
    friday = _next_friday(today)
    ooo_start = to_db(to_utc(friday, time(13, 0), tz))
    ooo_end = to_db(to_utc(friday, time(17, 0), tz))

    entry = db.query(OutOfOffice).filter(OutOfOffice.uuid == DEMO_OUT_OF_OFFICE_UUID).first()
    if entry:
        entry.provider_id = provider.id
        entry.start = ooo_start
        entry.end = ooo_end
        entry.enabled = 1
    else:
        db.add(OutOfOffice(
            uuid=DEMO_OUT_OF_OFFICE_UUID,
            provider_id=provider.id,
            start=ooo_start,
            end=ooo_end,
            reason="Obuka/Konferencija",
            enabled=1,
        ))

    db.commit()
    logger.info(f"[SEED] Demo data ready for provider {provider.id}, event type {event_type.id}")

    return {
        "provider_id": provider.id,
        "schedule_id": schedule.id,
        "event_type_id": event_type.id,
        "out_of_office_uuid": DEMO_OUT_OF_OFFICE_UUID,
    }
