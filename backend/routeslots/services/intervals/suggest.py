"""
Gap suggester over merged occupied blocks (see merge.py).

- first_free_point_from(blocks, start): first point >= start not covered by any block,
  plus the last free point before the next block (None = unbounded).
- first_free_span_from(blocks, start, span): first [min, min + span] that fits entirely
  in one free stretch. span is max - min of the requested interval, so the suggestion
  keeps the same size.
- suggest_range(blocks, requested_min, requested_max): both of the above for a rejected
  request. Advisory only; nothing is reserved.

Blocks must come from merge_intervals (sorted, disjoint, non-adjacent).
"""
from collections import namedtuple
from typing import Sequence

from routeslots.services.intervals.merge import Interval

# Free stretch starting at `start`; end is None when no occupied block follows
FreeStretch = namedtuple("FreeStretch", ["start", "end"])

# What a caller can offer instead of a conflicting range
RangeSuggestion = namedtuple("RangeSuggestion", ["first_free_from", "first_free_to", "same_size"])


def first_free_point_from(blocks: Sequence[Interval], start: int) -> FreeStretch:
    point = int(start)
    for block in blocks:
        if block.max < point:
            continue
        if block.min <= point:
            # Inside an occupied block: jump past it
            point = block.max + 1
            continue
        return FreeStretch(point, block.min - 1)
    return FreeStretch(point, None)


def first_free_span_from(blocks: Sequence[Interval], start: int, span: int) -> Interval:
    if span < 0:
        raise ValueError("span must be >= 0")
    candidate = int(start)
    for block in blocks:
        if block.max < candidate:
            continue
        if block.min <= candidate:
            candidate = block.max + 1
            continue
        if candidate + span <= block.min - 1:
            return Interval(candidate, candidate + span)
        # Stretch before this block is too short: continue after it
        candidate = block.max + 1
    # Past the last block everything is free
    return Interval(candidate, candidate + span)


def suggest_range(blocks: Sequence[Interval], requested_min: int, requested_max: int) -> RangeSuggestion:
    first = first_free_point_from(blocks, requested_min)
    span = requested_max - requested_min
    same_size = first_free_span_from(blocks, first.start, span) if span >= 0 else None
    return RangeSuggestion(first.start, first.end, same_size)


def suggestion_tips(suggestion: RangeSuggestion | None) -> list[str]:
    """Operator-facing lines describing a suggestion."""
    if suggestion is None:
        return ["Choose a range that does not overlap any active route."]
    tips = []
    if suggestion.first_free_to is not None:
        tips.append(f"Available from {suggestion.first_free_from} to {suggestion.first_free_to}.")
    else:
        tips.append(f"Available from {suggestion.first_free_from}.")
    if suggestion.same_size is not None:
        tips.append(f"Same size suggested: {suggestion.same_size.min}-{suggestion.same_size.max}.")
    return tips


def suggestion_to_dict(suggestion: RangeSuggestion | None) -> dict | None:
    if suggestion is None:
        return None
    return {
        "first_free_from": suggestion.first_free_from,
        "first_free_to": suggestion.first_free_to,
        "same_size": (
            {"min": suggestion.same_size.min, "max": suggestion.same_size.max}
            if suggestion.same_size is not None
            else None
        ),
    }
