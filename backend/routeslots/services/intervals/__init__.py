from routeslots.services.intervals.merge import Interval, intervals_overlap, merge_intervals
from routeslots.services.intervals.suggest import (
    FreeStretch,
    RangeSuggestion,
    first_free_point_from,
    first_free_span_from,
    suggest_range,
    suggestion_tips,
    suggestion_to_dict,
)

__all__ = [
    "Interval",
    "FreeStretch",
    "RangeSuggestion",
    "merge_intervals",
    "intervals_overlap",
    "first_free_point_from",
    "first_free_span_from",
    "suggest_range",
    "suggestion_tips",
    "suggestion_to_dict",
]
