"""Conflict detection over meeting intervals.

Intervals are half-open: a meeting ending at 10:00 and one starting at
10:00 do not conflict. Pairs are returned with their ids in sorted order,
so the result does not depend on input or pair ordering.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import NamedTuple


class Interval(NamedTuple):
    id: str
    start: datetime
    end: datetime


def intervals_overlap(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def detect_conflicts(intervals: Iterable[Interval]) -> set[tuple[str, str]]:
    """Return every overlapping pair of interval ids."""
    ordered = sorted(intervals, key=lambda i: (i.start, i.end, i.id))
    conflicts: set[tuple[str, str]] = set()

    active: list[Interval] = []
    for current in ordered:
        active = [i for i in active if i.end > current.start]
        for other in active:
            if intervals_overlap(current, other):
                conflicts.add(tuple(sorted((current.id, other.id))))  # type: ignore[arg-type]
        active.append(current)

    return conflicts
