# salon_booking/services/slots/busy.py
"""
Busy Interval Merger.

Combines, for one provider and one UTC window:
✓ bookings in PENDING / ACCEPTED of one calendar (a host, or the provider's
  own unassigned bookings), as their stored effective interval
✓ enabled out-of-office entries
✓ external calendar busy blocks (ExternalBusySource)

into one ordered, disjoint list of [start, end) intervals.
Re-running with identical inputs gives an identical result.
"""

import logging
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from ...models import Bookings, ExternalBusyIntervals
from ..bookings.status import ACTIVE_STATUSES
from .intervals import Interval, merge_intervals
from .rules import RuleStore, SqlRuleStore
from .timeutil import ensure_utc, to_db

logger = logging.getLogger(__name__)


class ExternalBusySource(Protocol):
    def busy_for(self, provider_id: int, start: datetime, end: datetime) -> list[Interval]:
        ...


class NoExternalBusy:
    """Provider without a synced calendar."""

    def busy_for(self, provider_id: int, start: datetime, end: datetime) -> list[Interval]:
        return []


class StoredExternalBusySource:
    """Busy blocks previously synced into external_busy_intervals."""

    def __init__(self, db: Session):
        self.db = db

    def busy_for(self, provider_id: int, start: datetime, end: datetime) -> list[Interval]:
        rows = (
            self.db.query(ExternalBusyIntervals.start, ExternalBusyIntervals.end)
            .filter(
                ExternalBusyIntervals.provider_id == provider_id,
                ExternalBusyIntervals.start < to_db(end),
                ExternalBusyIntervals.end > to_db(start),
            )
            .all()
        )
        return [Interval(ensure_utc(s), ensure_utc(e)) for s, e in rows]


def booking_busy_intervals(
    db: Session,
    provider_id: int,
    start: datetime,
    end: datetime,
    ignore_booking_id: Optional[int] = None,
    host_id: Optional[int] = None,
) -> list[Interval]:
    """
    Effective intervals of active bookings overlapping [start, end).

    Each host is its own calendar; host_id None selects the bookings
    assigned to no host.
    """
    host_filter = Bookings.host_id.is_(None) if host_id is None else Bookings.host_id == host_id
    query = db.query(Bookings.effective_start, Bookings.effective_end).filter(
        Bookings.provider_id == provider_id,
        host_filter,
        Bookings.status.in_(ACTIVE_STATUSES),
        Bookings.effective_start < to_db(end),
        Bookings.effective_end > to_db(start),
    )
    if ignore_booking_id is not None:
        query = query.filter(Bookings.id != ignore_booking_id)

    return [Interval(ensure_utc(s), ensure_utc(e)) for s, e in query.all()]


def merge_busy(
    db: Session,
    provider_id: int,
    start: datetime,
    end: datetime,
    rule_store: RuleStore | None = None,
    external: ExternalBusySource | None = None,
    ignore_booking_id: Optional[int] = None,
    host_id: Optional[int] = None,
) -> list[Interval]:
    """
    Build the busy set of a provider for a UTC window.

    Args:
        db: Session used for bookings (and the default collaborators)
        provider_id: Provider ID
        start, end: UTC window; anything overlapping it is included whole
        rule_store: Source of out-of-office entries
        external: Source of synced calendar busy blocks
        ignore_booking_id: Booking left out (the one being rescheduled)
        host_id: Calendar whose bookings count; out-of-office and external
                 blocks close the salon for every host

    Returns:
        Ordered, disjoint list of busy intervals
    """
    rule_store = rule_store or SqlRuleStore(db)
    external = external or StoredExternalBusySource(db)

    intervals: list[Interval] = []
    intervals.extend(booking_busy_intervals(db, provider_id, start, end, ignore_booking_id, host_id))
    intervals.extend(e.interval for e in rule_store.overrides_for(provider_id, start, end))
    intervals.extend(external.busy_for(provider_id, start, end))

    busy = merge_intervals(intervals)
    logger.debug(f"Provider {provider_id}: {len(intervals)} busy intervals merged into {len(busy)}")
    return busy
