# salon_booking/services/slots/rules.py
"""
Availability Rule Store: read-only view of a provider's working hours.

rules_for()     → schedule time zone, recurring weekly rules, date hours
overrides_for() → enabled out-of-office entries overlapping a UTC window

The engine never writes through this interface.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from ...errors import ProviderNotFound
from ...models import DateHoursOverrides, OutOfOffice, Providers, Schedules
from .intervals import Interval
from .timeutil import END_OF_DAY, MIDNIGHT, ensure_utc, parse_hhmm, to_db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkingRule:
    """Recurring hours: weekdays (0 = Sunday) and a local time range."""
    days: frozenset[int]
    start: time
    end: time

    def applies_to(self, weekday: int) -> bool:
        return weekday in self.days


@dataclass(frozen=True)
class DateHours:
    """Custom hours for one local date. start == end blocks the date."""
    date: date
    start: time
    end: time

    @property
    def blocks_day(self) -> bool:
        return self.start == self.end


@dataclass(frozen=True)
class ScheduleRules:
    """
    Everything needed to derive working blocks for a provider.

    schedule_id is None when the provider has no schedule at all;
    rules are then empty and no slot is ever offered.
    """
    provider_id: int
    schedule_id: Optional[int]
    time_zone: str
    rules: tuple[WorkingRule, ...] = ()
    date_hours: dict[date, tuple[DateHours, ...]] = field(default_factory=dict)

    def hours_for(self, local_date: date) -> Optional[tuple[DateHours, ...]]:
        """Date hours that replace the recurring rules, or None."""
        return self.date_hours.get(local_date)


@dataclass(frozen=True)
class OutOfOfficeEntry:
    uuid: str
    start: datetime
    end: datetime
    reason: Optional[str] = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)


class RuleStore(Protocol):
    def rules_for(self, provider_id: int, schedule_id: Optional[int] = None) -> ScheduleRules:
        ...

    def overrides_for(self, provider_id: int, start: datetime, end: datetime) -> list[OutOfOfficeEntry]:
        ...


class SqlRuleStore:
    """RuleStore backed by the SQLAlchemy models."""

    def __init__(self, db: Session, default_time_zone: str = "Europe/Belgrade"):
        self.db = db
        self.default_time_zone = default_time_zone

    def rules_for(self, provider_id: int, schedule_id: Optional[int] = None) -> ScheduleRules:
        provider = self.db.get(Providers, provider_id)
        if not provider:
            raise ProviderNotFound(field="provider_id")

        schedule = _get_schedule(self.db, provider_id, schedule_id)
        if not schedule:
            logger.info(f"Provider {provider_id} has no schedule, no working hours")
            return ScheduleRules(
                provider_id=provider_id,
                schedule_id=None,
                time_zone=provider.time_zone or self.default_time_zone,
            )

        return ScheduleRules(
            provider_id=provider_id,
            schedule_id=schedule.id,
            time_zone=schedule.time_zone or provider.time_zone or self.default_time_zone,
            rules=tuple(_parse_rule(r) for r in schedule.rules),
            date_hours=_group_date_hours(schedule.date_hours),
        )

    def overrides_for(self, provider_id: int, start: datetime, end: datetime) -> list[OutOfOfficeEntry]:
        rows = (
            self.db.query(OutOfOffice)
            .filter(
                OutOfOffice.provider_id == provider_id,
                OutOfOffice.enabled == 1,
                OutOfOffice.start < to_db(end),
                OutOfOffice.end > to_db(start),
            )
            .order_by(OutOfOffice.start, OutOfOffice.id)
            .all()
        )
        return [
            OutOfOfficeEntry(
                uuid=r.uuid,
                start=ensure_utc(r.start),
                end=ensure_utc(r.end),
                reason=r.reason,
            )
            for r in rows
        ]


# ── Helpers ──────────────────────────────────────────────────────────────


def _get_schedule(db: Session, provider_id: int, schedule_id: Optional[int]) -> Optional[Schedules]:
    query = db.query(Schedules).filter(Schedules.provider_id == provider_id)
    if schedule_id is not None:
        schedule = query.filter(Schedules.id == schedule_id).first()
        if schedule:
            return schedule
        logger.warning(f"Schedule {schedule_id} not found for provider {provider_id}, using default")

    return query.order_by(Schedules.is_default.desc(), Schedules.id).first()


def _parse_rule(row) -> WorkingRule:
    try:
        days = json.loads(row.days) if row.days else []
    except json.JSONDecodeError:
        logger.error(f"Availability rule {row.id} has malformed days: {row.days!r}")
        days = []

    return WorkingRule(
        days=frozenset(int(d) % 7 for d in days),
        start=parse_hhmm(row.start_time),
        end=parse_hhmm(row.end_time),
    )


def _group_date_hours(rows: list[DateHoursOverrides]) -> dict[date, tuple[DateHours, ...]]:
    grouped: dict[date, list[DateHours]] = {}
    for r in rows:
        d = date.fromisoformat(r.date)
        grouped.setdefault(d, []).append(
            DateHours(date=d, start=parse_hhmm(r.start_time), end=parse_hhmm(r.end_time))
        )
    return {d: tuple(hours) for d, hours in grouped.items()}


def is_valid_rule_range(start: time, end: time) -> bool:
    """start < end, where an end of 23:59 or 00:00 stands for midnight."""
    if start == end:
        return False
    return start < end or end in (MIDNIGHT, END_OF_DAY)
