"""
Interval merger: coalesce overlapping or adjacent integer intervals into disjoint blocks.

Slots are discrete, so [1, 3] and [4, 6] share no point yet leave no gap between
them; they merge into [1, 6]. Output is sorted by (min, max) and has no two blocks
with next.min <= prev.max + 1.
"""
from collections import namedtuple
from typing import Iterable

# Closed integer interval [min, max]
Interval = namedtuple("Interval", ["min", "max"])


def merge_intervals(intervals: Iterable[tuple[int, int]]) -> list[Interval]:
    """Return the minimal list of disjoint blocks covering the same points. Empty intervals (max < min) cover nothing and are dropped."""
    ordered = sorted(
        (Interval(int(lo), int(hi)) for lo, hi in intervals if int(hi) >= int(lo)),
        key=lambda iv: (iv.min, iv.max),
    )
    merged: list[Interval] = []
    for iv in ordered:
        if merged and iv.min <= merged[-1].max + 1:
            last = merged[-1]
            merged[-1] = Interval(last.min, max(last.max, iv.max))
        else:
            merged.append(iv)
    return merged


def intervals_overlap(a_min: int, a_max: int, b_min: int, b_max: int) -> bool:
    """Closed-interval intersection: the two share at least one integer point."""
    return a_min <= b_max and a_max >= b_min
