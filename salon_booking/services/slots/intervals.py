# salon_booking/services/slots/intervals.py
"""
Half-open [start, end) intervals of aware UTC instants.

A slot ending exactly where a busy interval begins does not conflict.
"""

from datetime import datetime
from typing import Iterable, NamedTuple


class Interval(NamedTuple):
    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """
    Sort by start and coalesce overlapping and adjacent intervals.

    Empty intervals are dropped. The result is ordered and disjoint.
    """
    ordered = sorted(i for i in intervals if not i.is_empty)
    merged: list[Interval] = []

    for current in ordered:
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)

    return merged


def subtract_intervals(block: Interval, busy: list[Interval]) -> list[Interval]:
    """
    Remove a merged busy set from one block.

    Args:
        block: Interval to carve
        busy: Ordered, disjoint intervals (output of merge_intervals)

    Returns:
        Ordered free parts of the block
    """
    free: list[Interval] = []
    cursor = block.start

    for b in busy:
        if b.end <= cursor:
            continue
        if b.start >= block.end:
            break
        if b.start > cursor:
            free.append(Interval(cursor, b.start))
        cursor = max(cursor, b.end)
        if cursor >= block.end:
            break

    if cursor < block.end:
        free.append(Interval(cursor, block.end))

    return free


def any_overlap(candidate: Interval, busy: Iterable[Interval]) -> bool:
    return any(candidate.overlaps(b) for b in busy)


def intersect_intervals(first: list[Interval], second: list[Interval]) -> list[Interval]:
    """
    Parts covered by both ordered, disjoint lists.

    Used to bound a staff member's own hours by the event type's hours.
    """
    common: list[Interval] = []
    i = j = 0

    while i < len(first) and j < len(second):
        a, b = first[i], second[j]
        start = max(a.start, b.start)
        end = min(a.end, b.end)
        if start < end:
            common.append(Interval(start, end))

        if a.end <= b.end:
            i += 1
        else:
            j += 1

    return common
