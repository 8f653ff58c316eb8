# salon_booking/services/slots/availability.py
"""
Slot query: GetSlots(provider, event type, [from, to)).

Read path, no locking. Combines:
- working hours (rules / date hours, optionally cached in Redis)
- busy set (bookings, out-of-office, external calendars), always fresh
- event type grid (duration, interval, notice, buffers)

Storage errors are retried a bounded number of times and then surfaced
as TryAgain; nothing on this path writes.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from redis import Redis, RedisError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ...errors import EventTypeNotFound, HostNotAvailable, InvalidRange, ProviderNotFound, TryAgain
from ...models import EventTypeHosts, EventTypes, Hosts, Providers
from .busy import ExternalBusySource, merge_busy
from .calculator import DayBlocks, SlotParams, SlotSequence, day_working_blocks, generate_slots, working_blocks
from .config import BookingConfig, get_booking_config
from .intervals import Interval, intersect_intervals
from .redis_store import WorkingHoursRedisStore
from .rules import RuleStore, ScheduleRules, SqlRuleStore
from .timeutil import ensure_utc, load_zone, local_date_range

logger = logging.getLogger(__name__)


def get_slots(
    db: Session,
    provider_id: int,
    event_type_id: int,
    start: datetime,
    end: datetime,
    now: datetime | None = None,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
    rule_store: RuleStore | None = None,
    external: ExternalBusySource | None = None,
    host_id: Optional[int] = None,
) -> SlotSequence:
    """
    Offerable slot starts for an event type in [start, end).

    Args:
        db: Session (read only)
        provider_id: Provider ID
        event_type_id: Event type ID (must belong to the provider)
        start, end: UTC query window
        now: Reference time for minimum notice (query time when omitted)
        redis: Enables the working hours cache
        rule_store, external: Collaborators (SQL-backed by default)
        host_id: Staff member whose calendar is queried (None = the
                 provider's own calendar)

    Raises:
        ProviderNotFound, EventTypeNotFound, HostNotAvailable, InvalidRange,
        InvalidTimezone, TryAgain
    """
    config = config or get_booking_config()
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    start = ensure_utc(start)
    end = ensure_utc(end)

    attempts = config.read_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            return _compute_slots(
                db, provider_id, event_type_id, start, end, now,
                config, redis, rule_store, external, host_id,
            )
        except OperationalError as e:
            db.rollback()
            logger.warning(
                f"Slot query for provider {provider_id} failed (attempt {attempt}/{attempts}): {e}"
            )

    raise TryAgain("Availability is temporarily unavailable, try again")


def validate_range(start: datetime, end: datetime, config: BookingConfig) -> None:
    if end < start:
        raise InvalidRange("'to' must not be before 'from'", field="to")
    if end - start > timedelta(days=config.max_query_span_days):
        raise InvalidRange(
            f"Range must not exceed {config.max_query_span_days} days",
            field="to",
        )


def get_event_type(db: Session, provider_id: int, event_type_id: int) -> EventTypes:
    event_type = (
        db.query(EventTypes)
        .filter(
            EventTypes.id == event_type_id,
            EventTypes.provider_id == provider_id,
            EventTypes.is_active == 1,
        )
        .first()
    )
    if not event_type:
        raise EventTypeNotFound(field="event_type_id")
    return event_type


def get_provider(db: Session, provider_id: int) -> Providers:
    provider = db.get(Providers, provider_id)
    if not provider or not provider.is_active:
        raise ProviderNotFound(field="provider_id")
    return provider


def get_host(db: Session, event_type: EventTypes, host_id: Optional[int]) -> Optional[Hosts]:
    """Active staff member assigned to the event type; None stays None."""
    if host_id is None:
        return None

    host = (
        db.query(Hosts)
        .join(EventTypeHosts, EventTypeHosts.host_id == Hosts.id)
        .filter(
            Hosts.id == host_id,
            Hosts.provider_id == event_type.provider_id,
            Hosts.is_active == 1,
            EventTypeHosts.event_type_id == event_type.id,
        )
        .first()
    )
    if not host:
        raise HostNotAvailable(field="host_id")
    return host


def bookable_blocks(
    rule_store: RuleStore,
    provider_id: int,
    event_type: EventTypes,
    host: Optional[Hosts],
    start: datetime,
    end: datetime,
    redis: Redis | None = None,
    config: BookingConfig | None = None,
) -> list[Interval]:
    """
    Working blocks of the event type's schedule touching [start, end).

    A host with a schedule of their own only works where both schedules
    have hours.
    """
    config = config or get_booking_config()

    schedule = rule_store.rules_for(provider_id, event_type.schedule_id)
    blocks = working_blocks(schedule, start, end, _day_block_source(redis, schedule, start, end, config))
    if host is None or host.schedule_id is None:
        return blocks

    own = rule_store.rules_for(provider_id, host.schedule_id)
    own_blocks = working_blocks(own, start, end, _day_block_source(redis, own, start, end, config))
    return intersect_intervals(blocks, own_blocks)


def _compute_slots(
    db: Session,
    provider_id: int,
    event_type_id: int,
    start: datetime,
    end: datetime,
    now: datetime,
    config: BookingConfig,
    redis: Redis | None,
    rule_store: RuleStore | None,
    external: ExternalBusySource | None,
    host_id: Optional[int] = None,
) -> SlotSequence:
    # Step 1: Provider, event type and host
    get_provider(db, provider_id)
    event_type = get_event_type(db, provider_id, event_type_id)
    host = get_host(db, event_type, host_id)
    validate_range(start, end, config)
    params = SlotParams.from_event_type(event_type, config)

    # Step 2: Working hours
    rule_store = rule_store or SqlRuleStore(db, config.default_time_zone)
    blocks = bookable_blocks(rule_store, provider_id, event_type, host, start, end, redis, config)

    # Step 3: Busy set; effective intervals reach past the window edges
    busy = merge_busy(
        db,
        provider_id,
        start - params.reach,
        end + params.reach,
        rule_store=rule_store,
        external=external,
        host_id=host_id,
    )

    logger.debug(
        f"Slots for provider {provider_id}, event type {event_type_id}: "
        f"{len(blocks)} working blocks, {len(busy)} busy intervals"
    )

    # Step 4: Pure generation
    return generate_slots(blocks, busy, params, start, end, now)


def _day_block_source(
    redis: Redis | None,
    schedule: ScheduleRules,
    start: datetime,
    end: datetime,
    config: BookingConfig,
) -> DayBlocks:
    """
    Working blocks per local date, read through the Redis cache when
    one is configured. Cache failures fall back to computing.
    """
    if redis is None or schedule.schedule_id is None:
        return day_working_blocks

    store = WorkingHoursRedisStore(redis, config)
    dates = local_date_range(start, end, load_zone(schedule.time_zone))

    try:
        cached = store.mget_day_blocks(schedule.schedule_id, dates)
    except RedisError as e:
        logger.error(f"Working hours cache read failed for schedule {schedule.schedule_id}: {e}")
        return day_working_blocks

    resolved: dict[date, list[Interval]] = {}
    days_to_store: dict[date, list[Interval]] = {}
    for dt in dates:
        blocks = cached.get(dt)
        if blocks is None:
            # Cache miss, calculate
            blocks = day_working_blocks(schedule, dt)
            days_to_store[dt] = blocks
        resolved[dt] = blocks

    logger.debug(
        f"Working hours cache for schedule {schedule.schedule_id}: "
        f"{len(dates) - len(days_to_store)} hits, {len(days_to_store)} misses"
    )

    if days_to_store:
        try:
            store.store_multiple_days(schedule.schedule_id, days_to_store)
        except RedisError as e:
            logger.error(f"Working hours cache write failed for schedule {schedule.schedule_id}: {e}")

    def day_blocks(rules: ScheduleRules, local_date: date) -> list[Interval]:
        if local_date in resolved:
            return resolved[local_date]
        return day_working_blocks(rules, local_date)

    return day_blocks
