# salon_booking/services/slots/timeutil.py
"""
Time & time zone helpers.

All engine arithmetic happens on timezone-aware UTC datetimes.
Local wall-clock values (rule times, override dates) are converted here,
and only here.

DST policy for local -> UTC:
- ambiguous wall time (fall back, happens twice) -> the later instant
- non-existent wall time (spring forward gap)   -> shifted forward by the gap
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...errors import InvalidTimezone

UTC = timezone.utc

# "23:59" as an end time means "until midnight"
END_OF_DAY = time(23, 59)
MIDNIGHT = time(0, 0)


@lru_cache(maxsize=256)
def load_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name or raise InvalidTimezone."""
    if not name:
        raise InvalidTimezone(field="time_zone")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidTimezone(f"Unknown time zone: {name}", field="time_zone")


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" into a time."""
    hour, minute = value.strip().split(":")
    return time(int(hour), int(minute))


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize to aware UTC.

    Naive values are taken as UTC (that is how the database stores them).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_db(value: datetime) -> datetime:
    """Aware UTC -> naive UTC for DateTime columns."""
    return ensure_utc(value).replace(tzinfo=None)


def to_utc(local_date: date, local_time: time, tz: ZoneInfo) -> datetime:
    """
    Convert a wall-clock time on a local date to an aware UTC instant.

    Args:
        local_date: Calendar date in the zone
        local_time: Wall-clock time of day
        tz: Zone the wall clock belongs to

    Returns:
        Aware datetime in UTC
    """
    naive = datetime.combine(local_date, local_time.replace(tzinfo=None, fold=0))
    earlier = naive.replace(tzinfo=tz, fold=0)
    later = naive.replace(tzinfo=tz, fold=1)

    if earlier.utcoffset() == later.utcoffset():
        return earlier.astimezone(UTC)

    # Transition day: a gap if the wall time does not survive a round trip
    round_trip = earlier.astimezone(UTC).astimezone(tz).replace(tzinfo=None)
    if round_trip != naive:
        # fold=0 uses the pre-transition offset, which lands past the gap
        return earlier.astimezone(UTC)

    return later.astimezone(UTC)


def local_interval(
    local_date: date,
    start_time: time,
    end_time: time,
    tz: ZoneInfo,
) -> tuple[datetime, datetime]:
    """
    UTC [start, end) of a local time range on a date.

    An end of 23:59 or 00:00 runs to the next local midnight.
    """
    start = to_utc(local_date, start_time, tz)
    if end_time in (END_OF_DAY, MIDNIGHT):
        end = to_utc(local_date + timedelta(days=1), time(0, 0), tz)
    else:
        end = to_utc(local_date, end_time, tz)
    return start, end


def local_date_range(start_utc: datetime, end_utc: datetime, tz: ZoneInfo) -> list[date]:
    """
    Local calendar dates touched by a UTC window, padded by one day on each
    side so ranges that start the previous local evening are not missed.
    """
    first = ensure_utc(start_utc).astimezone(tz).date() - timedelta(days=1)
    last = ensure_utc(end_utc).astimezone(tz).date() + timedelta(days=1)

    dates = []
    current = first
    while current <= last:
        dates.append(current)
        current += timedelta(days=1)
    return dates


def sunday_based_weekday(value: date) -> int:
    """0 = Sunday ... 6 = Saturday (the numbering stored in availability rules)."""
    return (value.weekday() + 1) % 7
