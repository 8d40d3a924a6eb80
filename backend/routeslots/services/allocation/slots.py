"""
Slot bookkeeping shared by the single and bulk allocators.

"Used" slots are recomputed from stored rows inside the caller's transaction; nothing
is cached between requests.
"""
from typing import Iterable, Iterator

from sqlalchemy.orm import Session

from routeslots.core.constants import STATUS_ACTIVE
from routeslots.core.errors import RouteNotFound
from routeslots.models.route import Route
from routeslots.models.route_assignment import RouteAssignment


def iter_free_slots(range_min: int, range_max: int, taken: Iterable[int]) -> Iterator[int]:
    """Ascending slots in [range_min, range_max] not in taken."""
    blocked = set(taken)
    for slot in range(range_min, range_max + 1):
        if slot not in blocked:
            yield slot


def lowest_free_slot(range_min: int, range_max: int, taken: Iterable[int]) -> int | None:
    return next(iter_free_slots(range_min, range_max, taken), None)


def lock_route(db: Session, route_id: int) -> Route:
    """Load the route row FOR UPDATE so allocations on the same route serialize."""
    route = db.query(Route).filter(Route.id == route_id).with_for_update().one_or_none()
    if route is None:
        raise RouteNotFound(route_id)
    return route


def active_slots(db: Session, route_id: int, *, exclude_assignment_id: int | None = None) -> set[int]:
    """Slots held by active assignments on the route (ordered read, returned as a set)."""
    q = db.query(RouteAssignment.slot).filter(
        RouteAssignment.route_id == route_id,
        RouteAssignment.status == STATUS_ACTIVE,
    )
    if exclude_assignment_id is not None:
        q = q.filter(RouteAssignment.id != exclude_assignment_id)
    return {row.slot for row in q.order_by(RouteAssignment.slot.asc()).all()}


def slot_held_by_other(db: Session, route_id: int, slot: int, assignment_id: int) -> bool:
    """True when a different row (any status) on the route stores this slot."""
    return (
        db.query(RouteAssignment.id)
        .filter(
            RouteAssignment.route_id == route_id,
            RouteAssignment.slot == slot,
            RouteAssignment.id != assignment_id,
        )
        .first()
        is not None
    )


def route_occupancy(db: Session, route: Route) -> dict:
    used = active_slots(db, route.id)
    in_range = {s for s in used if route.range_min <= s <= route.range_max}
    return {
        "route_id": route.id,
        "range_min": route.range_min,
        "range_max": route.range_max,
        "capacity": route.capacity,
        "used": len(in_range),
        "free": max(0, route.capacity - len(in_range)),
        "first_free_slot": lowest_free_slot(route.range_min, route.range_max, used),
        "out_of_range": sorted(used - in_range),
    }
