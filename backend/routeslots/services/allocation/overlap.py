"""
Overlap guard: active route intervals must not intersect.

find_conflict is read-only; ensure_no_overlap raises RangeOverlap with the conflicting
route and a gap suggestion so the caller aborts before writing. Scope follows
settings.overlap_scope: "global" compares against every active route, "city" only
against active routes of the same city.
"""
import logging

from sqlalchemy.orm import Session

from routeslots.config import settings
from routeslots.core.constants import OVERLAP_SCOPE_CITY, STATUS_ACTIVE
from routeslots.core.errors import RangeOverlap
from routeslots.models.city import City
from routeslots.models.route import Route
from routeslots.services.intervals import (
    Interval,
    RangeSuggestion,
    merge_intervals,
    suggest_range,
    suggestion_tips,
    suggestion_to_dict,
)

logger = logging.getLogger(__name__)


def _scope_city_id(city_id: int | None) -> int | None:
    """City filter to apply, or None when overlap is checked globally."""
    if settings.overlap_scope == OVERLAP_SCOPE_CITY:
        return city_id
    return None


def _active_routes(db: Session, *, exclude_route_id: int | None = None, city_id: int | None = None):
    q = db.query(Route).filter(Route.status == STATUS_ACTIVE)
    if exclude_route_id is not None:
        q = q.filter(Route.id != exclude_route_id)
    scope_city = _scope_city_id(city_id)
    if scope_city is not None:
        q = q.filter(Route.city_id == scope_city)
    return q


def find_conflict(
    db: Session,
    range_min: int,
    range_max: int,
    *,
    exclude_route_id: int | None = None,
    city_id: int | None = None,
) -> Route | None:
    """First active route (lowest id) whose interval intersects [range_min, range_max], or None."""
    return (
        _active_routes(db, exclude_route_id=exclude_route_id, city_id=city_id)
        .filter(Route.range_min <= range_max, Route.range_max >= range_min)
        .order_by(Route.id.asc())
        .first()
    )


def occupied_blocks(
    db: Session,
    *,
    exclude_route_id: int | None = None,
    city_id: int | None = None,
) -> list[Interval]:
    """Merged intervals of every active route in scope."""
    rows = (
        _active_routes(db, exclude_route_id=exclude_route_id, city_id=city_id)
        .with_entities(Route.range_min, Route.range_max)
        .order_by(Route.range_min.asc(), Route.range_max.asc())
        .all()
    )
    return merge_intervals((r.range_min, r.range_max) for r in rows)


def suggest_for(
    db: Session,
    range_min: int,
    range_max: int,
    *,
    exclude_route_id: int | None = None,
    city_id: int | None = None,
) -> RangeSuggestion:
    blocks = occupied_blocks(db, exclude_route_id=exclude_route_id, city_id=city_id)
    return suggest_range(blocks, range_min, range_max)


def ensure_no_overlap(
    db: Session,
    range_min: int,
    range_max: int,
    *,
    exclude_route_id: int | None = None,
    city_id: int | None = None,
) -> None:
    """Raise RangeOverlap when [range_min, range_max] intersects an active route in scope."""
    conflict = find_conflict(db, range_min, range_max, exclude_route_id=exclude_route_id, city_id=city_id)
    if conflict is None:
        return

    suggestion = suggest_for(db, range_min, range_max, exclude_route_id=exclude_route_id, city_id=city_id)
    city = db.get(City, conflict.city_id)
    city_label = f"{city.name} (ID {conflict.city_id})" if city else f"city ID {conflict.city_id}"
    scope = settings.overlap_scope
    logger.info(
        "Range %s-%s overlaps active route id=%s (%s-%s), scope=%s",
        range_min,
        range_max,
        conflict.id,
        conflict.range_min,
        conflict.range_max,
        scope,
    )
    tips = suggestion_tips(suggestion)
    if scope == OVERLAP_SCOPE_CITY:
        tips.append("Active routes of the same city may not overlap.")
    else:
        tips.append("Ranges are global: active routes may not overlap across cities.")
    raise RangeOverlap(
        f"An active route already owns range {conflict.range_min}-{conflict.range_max}, "
        f"which overlaps the requested range {range_min}-{range_max}. "
        f'Conflict: "{conflict.name}" in {city_label}.',
        tips=tips,
        diagnostics={
            "conflict": {
                "id": conflict.id,
                "name": conflict.name,
                "city_id": conflict.city_id,
                "range_min": conflict.range_min,
                "range_max": conflict.range_max,
            },
            "requested": {"range_min": range_min, "range_max": range_max},
            "scope": scope,
            "suggestion": suggestion_to_dict(suggestion),
        },
    )
