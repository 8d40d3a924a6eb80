"""
Assignments: assign/unassign a customer, bulk assign, and row-level admin operations.

Each public function is one transaction. Activating a row always goes through the
single-slot allocator so the one-active-route rule and slot checks hold.
Row-level writes lock the route before the assignment row, the same order the
allocators use, so they cannot deadlock against a bulk assignment on that route.
"""
import logging

from sqlalchemy.orm import Session

from routeslots.core.constants import (
    ASSIGNMENT_DEFAULT_ORDER,
    ASSIGNMENT_ORDER_WHITELIST,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    STATUSES,
)
from routeslots.core.errors import AssignmentNotFound, InvalidRequest
from routeslots.db.session import transaction_scope
from routeslots.models.route import Route
from routeslots.models.route_assignment import RouteAssignment
from routeslots.services.allocation import (
    allocate_slot,
    bulk_allocate,
    lock_route,
    release_customer,
    renumber_inactive,
)
from routeslots.services.listing import order_clause, paginate, resolve_window

logger = logging.getLogger(__name__)


def serialize_assignment(row: RouteAssignment) -> dict:
    return {
        "id": row.id,
        "route_id": row.route_id,
        "customer_id": row.customer_id,
        "slot": row.slot,
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def _get_row(db: Session, assignment_id: int, lock: bool = False) -> RouteAssignment:
    q = db.query(RouteAssignment).filter(RouteAssignment.id == assignment_id)
    if lock:
        q = q.with_for_update().populate_existing()
    row = q.one_or_none()
    if row is None:
        raise AssignmentNotFound(assignment_id)
    return row


def _lock_route_and_row(db: Session, assignment_id: int) -> tuple[Route, RouteAssignment]:
    """Plain read to find the route, then route lock, then row lock."""
    route_id = _get_row(db, assignment_id).route_id
    route = lock_route(db, route_id)
    return route, _get_row(db, assignment_id, lock=True)


def _validate_status(status: str) -> str:
    if status not in STATUSES:
        raise InvalidRequest(f"Invalid status {status!r}; use one of {', '.join(STATUSES)}.")
    return status


# --- Allocation entry points ---


def assign_customer(
    db: Session,
    customer_id: int,
    route_id: int,
    required_city_id: int | None = None,
    slot: int | None = None,
) -> dict:
    with transaction_scope(db):
        result = allocate_slot(db, customer_id, route_id, required_city_id=required_city_id, slot=slot)
    return {
        "id": result.assignment_id,
        "route_id": result.route_id,
        "customer_id": result.customer_id,
        "slot": result.slot,
        "outcome": result.outcome,
        "attempts": result.attempts,
        "deactivated": result.deactivated_ids,
    }


def unassign_customer(db: Session, customer_id: int) -> dict:
    with transaction_scope(db):
        deactivated = release_customer(db, customer_id)
    return {"ok": True, "customer_id": customer_id, "deactivated": deactivated}


def bulk_assign(db: Session, route_id: int, customer_ids: list[int], reset: bool = False) -> dict:
    with transaction_scope(db):
        return bulk_allocate(db, route_id, customer_ids, reset=reset)


# --- Rows ---


def get_assignment(db: Session, assignment_id: int) -> dict:
    return serialize_assignment(_get_row(db, assignment_id))


def list_assignments(
    db: Session,
    route_id: int | None = None,
    customer_id: int | None = None,
    status: str | None = None,
    order_by: str | None = None,
    order_dir: str | None = None,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.query(RouteAssignment)
    if route_id is not None:
        query = query.filter(RouteAssignment.route_id == route_id)
    if customer_id is not None:
        query = query.filter(RouteAssignment.customer_id == customer_id)
    if status:
        query = query.filter(RouteAssignment.status == _validate_status(status))
    query = query.order_by(
        *order_clause(RouteAssignment, ASSIGNMENT_ORDER_WHITELIST, order_by, order_dir, ASSIGNMENT_DEFAULT_ORDER)
    )
    rows, meta = paginate(query, resolve_window(page, page_size, offset, limit))
    return {"data": [serialize_assignment(r) for r in rows], "meta": meta}


def update_assignment(db: Session, assignment_id: int, slot: int | None = None, status: str | None = None) -> dict:
    """
    Change slot and/or status of one row. Active targets go through the allocator
    (range, holder and exclusivity checks); inactive targets are renumbered in range
    and flipped without touching other rows.
    """
    if slot is None and status is None:
        raise InvalidRequest("Send slot, status or both.")
    if status is not None:
        _validate_status(status)
    with transaction_scope(db):
        route, row = _lock_route_and_row(db, assignment_id)
        target = status or row.status
        if target == STATUS_ACTIVE:
            allocate_slot(db, row.customer_id, row.route_id, slot=slot)
        else:
            if slot is not None and slot != row.slot:
                renumber_inactive(db, route, row, slot)
            row.status = STATUS_INACTIVE
            db.flush()
        db.refresh(row)
        logger.info("Assignment %s status -> %s (slot %s)", row.id, row.status, row.slot)
        return serialize_assignment(row)


def set_assignment_status(db: Session, assignment_id: int, status: str) -> dict:
    return update_assignment(db, assignment_id, status=_validate_status(status))


def delete_assignment(db: Session, assignment_id: int) -> dict:
    with transaction_scope(db):
        _, row = _lock_route_and_row(db, assignment_id)
        db.delete(row)
        db.flush()
        logger.info("Assignment %s deleted (route %s, slot %s)", assignment_id, row.route_id, row.slot)
    return {"ok": True, "id": assignment_id, "deleted": True}
