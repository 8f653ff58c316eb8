# salon_booking/services/slots/invalidator.py
"""
Working hours cache invalidation.

Call after a schedule edit:
- rules or time zone changed → every cached date of the schedule
- date hours added / removed → only the local dates they cover

Bookings, out-of-office and external busy blocks never need this;
they are not cached.
"""

from datetime import date, timedelta
from typing import Optional

from redis import Redis

from .redis_store import WorkingHoursRedisStore


def affected_dates(first: date, last: date) -> list[date]:
    """Every local date from first to last, both included, in order."""
    first, last = sorted((first, last))
    return [first + timedelta(days=n) for n in range((last - first).days + 1)]


def invalidate_schedule_cache(
    redis: Redis,
    schedule_id: int,
    date_start: Optional[date] = None,
    date_end: Optional[date] = None,
) -> int:
    """
    Drop cached working blocks of a schedule.

    Without date_start the whole schedule is dropped. date_end defaults
    to date_start (a single date).

    Returns:
        Number of deleted cache keys
    """
    dates = None
    if date_start is not None:
        dates = affected_dates(date_start, date_end or date_start)

    return WorkingHoursRedisStore(redis).delete_day_blocks(schedule_id, dates)
