# salon_booking/services/slots/calculator.py
"""
Slot Generator.

Working blocks:
  per local date, the date hours if the schedule has any for that date,
  otherwise the weekday's recurring rules; converted to UTC and merged.

Slots:
  the grid of each working block starts at the block start and steps by the
  slot interval. A grid point t is offered iff
    ✓ from <= t < to
    ✓ t >= now + minimum notice
    ✓ [t, t + duration) lies inside one free part of the block
    ✓ the effective interval [t - before, t + duration + after) hits no busy interval

Busy carve-outs never shift the grid: with a 09:00 start and a 30 min
interval, slots stay on :00 / :30.
"""

import logging
from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, Optional

from .config import BookingConfig, get_booking_config
from .intervals import Interval, merge_intervals, subtract_intervals
from .rules import ScheduleRules, is_valid_rule_range
from .timeutil import ensure_utc, load_zone, local_date_range, local_interval, sunday_based_weekday

logger = logging.getLogger(__name__)

DayBlocks = Callable[[ScheduleRules, date], list[Interval]]


@dataclass(frozen=True)
class SlotParams:
    """Event type values that shape the slot grid."""
    length_minutes: int
    slot_interval: int
    minimum_notice: int
    before_buffer: int = 0
    after_buffer: int = 0

    def __post_init__(self):
        if self.length_minutes <= 0:
            raise ValueError(f"length_minutes must be positive, got {self.length_minutes}")
        if self.slot_interval <= 0:
            raise ValueError(f"slot_interval must be positive, got {self.slot_interval}")

    @classmethod
    def from_event_type(cls, event_type, config: BookingConfig | None = None) -> "SlotParams":
        config = config or get_booking_config()
        notice = event_type.minimum_booking_notice
        return cls(
            length_minutes=event_type.length_minutes,
            slot_interval=event_type.slot_interval or event_type.length_minutes,
            minimum_notice=config.default_minimum_notice if notice is None else notice,
            before_buffer=event_type.before_event_buffer or 0,
            after_buffer=event_type.after_event_buffer or 0,
        )

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.length_minutes)

    @property
    def step(self) -> timedelta:
        return timedelta(minutes=self.slot_interval)

    @property
    def notice(self) -> timedelta:
        return timedelta(minutes=self.minimum_notice)

    def effective(self, start: datetime) -> Interval:
        """Slot interval widened by the buffers."""
        return Interval(
            start - timedelta(minutes=self.before_buffer),
            start + self.duration + timedelta(minutes=self.after_buffer),
        )

    @property
    def reach(self) -> timedelta:
        """How far an effective interval can stick out of a slot start."""
        return timedelta(minutes=self.length_minutes + self.before_buffer + self.after_buffer)


# ── Working blocks ───────────────────────────────────────────────────────


def day_working_blocks(schedule: ScheduleRules, local_date: date) -> list[Interval]:
    """
    UTC working intervals of one local date.

    Date hours replace the recurring rules; a blocking entry (start == end)
    leaves the date without any hours.
    """
    tz = load_zone(schedule.time_zone)
    hours = schedule.hours_for(local_date)

    if hours is not None:
        ranges = [(h.start, h.end) for h in hours if not h.blocks_day]
    else:
        weekday = sunday_based_weekday(local_date)
        ranges = [(r.start, r.end) for r in schedule.rules if r.applies_to(weekday)]

    blocks = []
    for start, end in ranges:
        if not is_valid_rule_range(start, end):
            logger.warning(
                f"Schedule {schedule.schedule_id}: skipping empty range {start}-{end} on {local_date}"
            )
            continue
        blocks.append(Interval(*local_interval(local_date, start, end, tz)))

    return merge_intervals(blocks)


def working_blocks(
    schedule: ScheduleRules,
    start: datetime,
    end: datetime,
    day_blocks: Optional[DayBlocks] = None,
) -> list[Interval]:
    """
    Merged UTC working blocks touching [start, end).

    Args:
        schedule: Rules and time zone
        start, end: UTC window
        day_blocks: Per-date block source (defaults to day_working_blocks,
                    the cached variant plugs in here)
    """
    day_blocks = day_blocks or day_working_blocks
    tz = load_zone(schedule.time_zone)

    blocks: list[Interval] = []
    for local_date in local_date_range(start, end, tz):
        blocks.extend(day_blocks(schedule, local_date))

    window = Interval(start, end)
    return [b for b in merge_intervals(blocks) if b.overlaps(window)]


# ── Slots ────────────────────────────────────────────────────────────────


class SlotSequence:
    """
    Offerable slot starts, ascending, each once.

    Holds only immutable inputs: every iteration recomputes from scratch,
    so the sequence can be enumerated any number of times.
    """

    def __init__(
        self,
        blocks: list[Interval],
        busy: list[Interval],
        params: SlotParams,
        window_start: datetime,
        window_end: datetime,
        now: datetime,
    ):
        self.blocks = tuple(blocks)
        self.busy = tuple(busy)
        self.params = params
        self.window_start = ensure_utc(window_start)
        self.window_end = ensure_utc(window_end)
        self.now = ensure_utc(now)

    @property
    def earliest(self) -> datetime:
        return max(self.window_start, self.now + self.params.notice)

    def __iter__(self) -> Iterator[datetime]:
        return _generate(self.blocks, self.busy, self.params, self.earliest, self.window_end)

    def __contains__(self, start: datetime) -> bool:
        start = ensure_utc(start)
        for t in self:
            if t >= start:
                return t == start
        return False

    def first(self) -> Optional[datetime]:
        return next(iter(self), None)

    def __repr__(self) -> str:
        return (
            f"SlotSequence({self.window_start.isoformat()} - {self.window_end.isoformat()}, "
            f"blocks={len(self.blocks)}, busy={len(self.busy)})"
        )


def generate_slots(
    blocks: list[Interval],
    busy: list[Interval],
    params: SlotParams,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
) -> SlotSequence:
    """
    Build the slot sequence for precomputed working blocks and busy set.

    Pure: no I/O, no clock reads (now is passed in).
    """
    return SlotSequence(blocks, busy, params, window_start, window_end, now)


def _generate(
    blocks: tuple[Interval, ...],
    busy: tuple[Interval, ...],
    params: SlotParams,
    earliest: datetime,
    window_end: datetime,
) -> Iterator[datetime]:
    busy_list = list(busy)
    busy_ends = [b.end for b in busy_list]
    duration = params.duration
    step = params.step

    for block in blocks:
        if block.end <= earliest:
            continue
        if block.start >= window_end:
            break

        for free in subtract_intervals(block, busy_list):
            t = _align(block.start, max(free.start, earliest), step)
            while t < window_end and t + duration <= free.end:
                if not _collides(params.effective(t), busy_list, busy_ends):
                    yield t
                t += step


def _align(anchor: datetime, value: datetime, step: timedelta) -> datetime:
    """First grid point anchor + k * step that is >= value."""
    if value <= anchor:
        return anchor
    steps = -(-(value - anchor) // step)
    return anchor + steps * step


def _collides(candidate: Interval, busy: list[Interval], busy_ends: list[datetime]) -> bool:
    # busy is ordered and disjoint, so ends are ordered too
    idx = bisect_right(busy_ends, candidate.start)
    return idx < len(busy) and busy[idx].start < candidate.end
