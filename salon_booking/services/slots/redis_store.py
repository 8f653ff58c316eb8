# salon_booking/services/slots/redis_store.py
"""
Redis storage for working hours using Sorted Sets.

Key format: slots:hours:{schedule_id}:{date}
Value: Sorted Set where member = "{start_ts}:{end_ts}" (UTC unix seconds),
       score = start_ts.

Only working hours are cached: they change when the schedule changes.
Bookings, out-of-office and external busy blocks are read fresh per query.
Sentinel: "__empty__" with score=0 marks "calculated, no working hours".
"""

import logging
from datetime import date, datetime

from redis import Redis

from .config import BookingConfig, get_booking_config
from .intervals import Interval
from .timeutil import UTC

logger = logging.getLogger(__name__)

EMPTY_SENTINEL = "__empty__"


def _decode(member) -> str:
    return member.decode() if isinstance(member, bytes) else member


def _encode_block(block: Interval) -> str:
    return f"{int(block.start.timestamp())}:{int(block.end.timestamp())}"


def _decode_block(member: str) -> Interval:
    start_ts, end_ts = member.split(":")
    return Interval(
        datetime.fromtimestamp(int(start_ts), tz=UTC),
        datetime.fromtimestamp(int(end_ts), tz=UTC),
    )


class WorkingHoursRedisStore:
    """Redis storage wrapper using Sorted Sets for working blocks."""

    KEY_PREFIX = "slots:hours"

    def __init__(self, redis: Redis, config: BookingConfig | None = None):
        self.redis = redis
        self.config = config or get_booking_config()

    def _key(self, schedule_id: int, dt: date) -> str:
        return f"{self.KEY_PREFIX}:{schedule_id}:{dt.isoformat()}"

    def _queue_store(self, pipe, schedule_id: int, dt: date, blocks: list[Interval]) -> None:
        key = self._key(schedule_id, dt)
        pipe.delete(key)
        if blocks:
            pipe.zadd(key, {_encode_block(b): int(b.start.timestamp()) for b in blocks})
        else:
            # No hours that day: sentinel so EXISTS returns True
            pipe.zadd(key, {EMPTY_SENTINEL: 0})
        pipe.expire(key, self.config.cache_ttl_seconds)

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_blocks(self, schedule_id: int, dt: date, blocks: list[Interval]) -> None:
        """
        Store working blocks for a local date.

        Args:
            schedule_id: Schedule ID
            dt: Local date of the schedule's time zone
            blocks: Merged UTC blocks. Empty list → sentinel is stored.
        """
        pipe = self.redis.pipeline()
        self._queue_store(pipe, schedule_id, dt, blocks)
        pipe.execute()

    def store_multiple_days(self, schedule_id: int, days_blocks: dict[date, list[Interval]]) -> None:
        """Batch store blocks for multiple dates via pipeline."""
        if not days_blocks:
            return

        pipe = self.redis.pipeline()
        for dt, blocks in days_blocks.items():
            self._queue_store(pipe, schedule_id, dt, blocks)
        pipe.execute()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_blocks(self, schedule_id: int, dt: date) -> list[Interval] | None:
        """
        Get cached blocks for a date.

        Returns:
            Blocks ordered by start, or None on cache miss.
        """
        key = self._key(schedule_id, dt)
        if not self.redis.exists(key):
            return None

        members = self.redis.zrangebyscore(key, "-inf", "+inf")
        return [
            _decode_block(m)
            for m in (_decode(raw) for raw in members)
            if m != EMPTY_SENTINEL
        ]

    def mget_day_blocks(self, schedule_id: int, dates: list[date]) -> dict[date, list[Interval] | None]:
        """
        Batch get blocks for multiple dates.

        Returns:
            Dict mapping date → blocks (or None on cache miss).
        """
        if not dates:
            return {}

        keys = [self._key(schedule_id, dt) for dt in dates]

        # First pass: check existence
        pipe = self.redis.pipeline()
        for key in keys:
            pipe.exists(key)
        exists_results = pipe.execute()

        # Second pass: read existing keys
        pipe = self.redis.pipeline()
        for key, exists in zip(keys, exists_results):
            if exists:
                pipe.zrangebyscore(key, "-inf", "+inf")
        range_results = pipe.execute()

        result = {}
        range_idx = 0
        for dt, exists in zip(dates, exists_results):
            if exists:
                members = (_decode(m) for m in range_results[range_idx])
                result[dt] = [_decode_block(m) for m in members if m != EMPTY_SENTINEL]
                range_idx += 1
            else:
                result[dt] = None

        return result

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_blocks(self, schedule_id: int, dates: list[date] | None = None) -> int:
        """
        Delete cached blocks.

        Args:
            schedule_id: Schedule ID
            dates: Specific dates, or None to delete all for the schedule.

        Returns:
            Number of deleted keys.
        """
        if dates:
            keys = [self._key(schedule_id, dt) for dt in dates]
        else:
            keys = list(self.redis.scan_iter(match=f"{self.KEY_PREFIX}:{schedule_id}:*"))

        if not keys:
            return 0

        deleted = self.redis.delete(*keys)
        logger.info(f"Working hours cache: deleted {deleted} keys for schedule {schedule_id}")
        return deleted
