"""
Routes: create, edit, status changes, delete and listing.

Every write that can make a route's interval live (create active, edit bounds or
city of an active route, inactive -> active) goes through the overlap guard first.
Range edits may not strand active assignments outside the new bounds.
"""
import logging

from sqlalchemy import func, or_, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from routeslots.core.constants import (
    ROUTE_DEFAULT_ORDER,
    ROUTE_ORDER_WHITELIST,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    STATUSES,
)
from routeslots.core.errors import (
    CONFLICT_FOREIGN_KEY,
    CONFLICT_NAME,
    CityNotFound,
    DuplicateName,
    HasDependents,
    InvalidRange,
    InvalidRequest,
    RouteNotFound,
    classify_integrity_error,
)
from routeslots.db.session import transaction_scope
from routeslots.models.city import City
from routeslots.models.route import Route
from routeslots.models.route_assignment import RouteAssignment
from routeslots.services.allocation.overlap import ensure_no_overlap, occupied_blocks, suggest_for
from routeslots.services.allocation.slots import lock_route, route_occupancy
from routeslots.services.intervals import first_free_span_from, suggestion_tips, suggestion_to_dict
from routeslots.services.listing import order_clause, paginate, resolve_window

logger = logging.getLogger(__name__)

# Serializes range writes on PostgreSQL so two transactions cannot both pass the overlap check
ROUTE_RANGE_LOCK_KEY = 7_240_001


def serialize_route(route: Route) -> dict:
    return {
        "id": route.id,
        "city_id": route.city_id,
        "name": route.name,
        "range_min": route.range_min,
        "range_max": route.range_max,
        "capacity": route.capacity,
        "status": route.status,
        "created_at": route.created_at.isoformat() if route.created_at else None,
        "updated_at": route.updated_at.isoformat() if route.updated_at else None,
    }


def _lock_route_ranges(db: Session) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": ROUTE_RANGE_LOCK_KEY})


def _validate_status(status: str) -> str:
    value = (status or "").strip().lower()
    if value not in STATUSES:
        raise InvalidRequest(f"Invalid status {status!r}; use one of {', '.join(STATUSES)}.")
    return value


def _validate_name(name: str | None) -> str:
    value = (name or "").strip()
    if not value:
        raise InvalidRequest("Route name is required.")
    return value


def validate_range(range_min, range_max) -> tuple[int, int]:
    try:
        lo, hi = int(range_min), int(range_max)
    except (TypeError, ValueError):
        raise InvalidRange("Range bounds must be integers.") from None
    if lo < 0 or hi < 0:
        raise InvalidRange("Range bounds cannot be negative.", diagnostics={"range_min": lo, "range_max": hi})
    if hi < lo:
        raise InvalidRange(
            "range_max must be greater than or equal to range_min.",
            diagnostics={"range_min": lo, "range_max": hi},
        )
    return lo, hi


def _require_city(db: Session, city_id: int) -> City:
    city = db.get(City, city_id)
    if city is None:
        raise CityNotFound(city_id)
    return city


def _ensure_unique_name(db: Session, city_id: int, name: str, exclude_route_id: int | None = None) -> None:
    q = db.query(Route.id).filter(Route.city_id == city_id, func.lower(Route.name) == name.lower())
    if exclude_route_id is not None:
        q = q.filter(Route.id != exclude_route_id)
    if q.first() is not None:
        raise DuplicateName(
            f'A route named "{name}" already exists in city {city_id}.',
            diagnostics={"city_id": city_id, "name": name},
        )


def _flush_route(db: Session, route: Route) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        if classify_integrity_error(exc) == CONFLICT_NAME:
            raise DuplicateName(
                f'A route named "{route.name}" already exists in city {route.city_id}.',
                diagnostics={"city_id": route.city_id, "name": route.name},
            ) from exc
        raise


def _resolve_create_range(db: Session, city_id: int, range_min, range_max, capacity) -> tuple[int, int]:
    """Explicit bounds, or min (default: first stretch from 1 that fits) plus capacity."""
    if range_max is not None:
        if range_min is None:
            raise InvalidRange("range_min is required when range_max is given.")
        return validate_range(range_min, range_max)
    if capacity is None:
        raise InvalidRange("Send range_min and range_max, or a capacity.")
    try:
        size = int(capacity)
    except (TypeError, ValueError):
        raise InvalidRange("capacity must be an integer.") from None
    if size <= 0:
        raise InvalidRange("capacity must be positive.", diagnostics={"capacity": size})
    if range_min is None:
        blocks = occupied_blocks(db, city_id=city_id)
        placed = first_free_span_from(blocks, 1, size - 1)
        return placed.min, placed.max
    lo = validate_range(range_min, range_min)[0]
    return lo, lo + size - 1


def _out_of_range_active(db: Session, route_id: int, range_min: int, range_max: int) -> list[int]:
    rows = (
        db.query(RouteAssignment.slot)
        .filter(
            RouteAssignment.route_id == route_id,
            RouteAssignment.status == STATUS_ACTIVE,
            or_(RouteAssignment.slot < range_min, RouteAssignment.slot > range_max),
        )
        .order_by(RouteAssignment.slot.asc())
        .all()
    )
    return [r.slot for r in rows]


# --- Create / read ---


def create_route(
    db: Session,
    city_id: int,
    name: str,
    range_min: int | None = None,
    range_max: int | None = None,
    capacity: int | None = None,
    status: str = STATUS_ACTIVE,
) -> dict:
    name = _validate_name(name)
    status = _validate_status(status)
    with transaction_scope(db):
        _require_city(db, city_id)
        _lock_route_ranges(db)
        lo, hi = _resolve_create_range(db, city_id, range_min, range_max, capacity)
        _ensure_unique_name(db, city_id, name)
        if status == STATUS_ACTIVE:
            ensure_no_overlap(db, lo, hi, city_id=city_id)
        route = Route(city_id=city_id, name=name, range_min=lo, range_max=hi, status=status)
        db.add(route)
        _flush_route(db, route)
        db.refresh(route)
        logger.info("Route created id=%s city=%s range=%s-%s status=%s", route.id, city_id, lo, hi, status)
        return serialize_route(route)


def get_route(db: Session, route_id: int) -> dict:
    route = db.get(Route, route_id)
    if route is None:
        raise RouteNotFound(route_id)
    return serialize_route(route)


def list_routes(
    db: Session,
    q: str | None = None,
    city_id: int | None = None,
    status: str | None = None,
    order_by: str | None = None,
    order_dir: str | None = None,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.query(Route)
    if q and q.strip():
        term = q.strip()
        conditions = [Route.name.ilike(f"%{term}%")]
        if term.isdigit():
            conditions.append(Route.id == int(term))
        query = query.filter(or_(*conditions))
    if city_id is not None:
        query = query.filter(Route.city_id == city_id)
    if status:
        query = query.filter(Route.status == _validate_status(status))
    query = query.order_by(*order_clause(Route, ROUTE_ORDER_WHITELIST, order_by, order_dir, ROUTE_DEFAULT_ORDER))
    rows, meta = paginate(query, resolve_window(page, page_size, offset, limit))
    return {"data": [serialize_route(r) for r in rows], "meta": meta}


# --- Edit ---


def update_route(
    db: Session,
    route_id: int,
    name: str | None = None,
    city_id: int | None = None,
    range_min: int | None = None,
    range_max: int | None = None,
) -> dict:
    with transaction_scope(db):
        route = lock_route(db, route_id)
        new_name = _validate_name(name) if name is not None else route.name
        new_city = city_id if city_id is not None else route.city_id
        lo, hi = validate_range(
            range_min if range_min is not None else route.range_min,
            range_max if range_max is not None else route.range_max,
        )
        if new_city != route.city_id:
            _require_city(db, new_city)
        if new_name != route.name or new_city != route.city_id:
            _ensure_unique_name(db, new_city, new_name, exclude_route_id=route.id)

        bounds_changed = (lo, hi) != (route.range_min, route.range_max)
        if bounds_changed:
            stranded = _out_of_range_active(db, route.id, lo, hi)
            if stranded:
                raise InvalidRange(
                    f"Range {lo}-{hi} would leave {len(stranded)} active assignment(s) of route {route.id} outside it.",
                    tips=["Detach or move those customers first, or choose bounds that include their slots."],
                    diagnostics={"route_id": route.id, "stranded_slots": stranded},
                )
        if route.is_active and (bounds_changed or new_city != route.city_id):
            _lock_route_ranges(db)
            ensure_no_overlap(db, lo, hi, exclude_route_id=route.id, city_id=new_city)

        route.name = new_name
        route.city_id = new_city
        route.range_min = lo
        route.range_max = hi
        _flush_route(db, route)
        db.refresh(route)
        logger.info("Route updated id=%s range=%s-%s", route.id, lo, hi)
        return serialize_route(route)


def set_route_status(db: Session, route_id: int, status: str) -> dict:
    status = _validate_status(status)
    with transaction_scope(db):
        route = lock_route(db, route_id)
        if status == STATUS_ACTIVE and not route.is_active:
            # Its interval was exempt while inactive
            _lock_route_ranges(db)
            ensure_no_overlap(db, route.range_min, route.range_max, exclude_route_id=route.id, city_id=route.city_id)
        route.status = status
        db.flush()
        db.refresh(route)
        logger.info("Route %s status -> %s", route.id, status)
        return serialize_route(route)


def delete_route(db: Session, route_id: int, soft: bool = False) -> dict:
    """Soft delete = deactivate. Hard delete refuses while any assignment row references the route."""
    if soft:
        return set_route_status(db, route_id, STATUS_INACTIVE)
    with transaction_scope(db):
        route = lock_route(db, route_id)
        counts = dict(
            db.query(RouteAssignment.status, func.count(RouteAssignment.id))
            .filter(RouteAssignment.route_id == route.id)
            .group_by(RouteAssignment.status)
            .all()
        )
        if counts:
            raise _route_has_dependents(route.id, counts)
        db.delete(route)
        try:
            db.flush()
        except IntegrityError as exc:
            if classify_integrity_error(exc) == CONFLICT_FOREIGN_KEY:
                raise _route_has_dependents(route_id, {}) from exc
            raise
        logger.info("Route %s deleted", route_id)
        return {"ok": True, "id": route_id, "deleted": True}


def _route_has_dependents(route_id: int, counts: dict) -> HasDependents:
    return HasDependents(
        f"Route {route_id} still has customer assignments and cannot be deleted.",
        tips=[
            "Detach its customers first, or deactivate the route instead (soft delete).",
        ],
        diagnostics={
            "route_id": route_id,
            "active": counts.get(STATUS_ACTIVE, 0),
            "inactive": counts.get(STATUS_INACTIVE, 0),
        },
    )


# --- Diagnostics ---


def get_route_occupancy(db: Session, route_id: int) -> dict:
    route = db.get(Route, route_id)
    if route is None:
        raise RouteNotFound(route_id)
    return route_occupancy(db, route)


def suggest_route_range(
    db: Session,
    range_min: int,
    range_max: int,
    exclude_route_id: int | None = None,
    city_id: int | None = None,
) -> dict:
    lo, hi = validate_range(range_min, range_max)
    suggestion = suggest_for(db, lo, hi, exclude_route_id=exclude_route_id, city_id=city_id)
    return {
        "requested": {"range_min": lo, "range_max": hi},
        "suggestion": suggestion_to_dict(suggestion),
        "tips": suggestion_tips(suggestion),
    }
