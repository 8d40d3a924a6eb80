"""
Bulk allocator: attach many customers to one route in one transaction.

Customers are classified against the route's stored rows as new (no row),
reactivate (inactive row) or already active. The capacity gate runs before any
write: free = capacity - active rows must cover new + reactivate. Reactivations are
placed first (keeping their old slot when it is still in range), then new customers
take slots from an ascending scan.

The scan skips every slot stored on the locked route, active or not, because the
(route, slot) constraint covers inactive rows too. When inactive history leaves
fewer usable slots than the gate counted, the remaining customers are reported as
unplaced instead of failing the batch.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from routeslots.core.constants import BULK_ASSIGN_MAX_CUSTOMERS, STATUS_ACTIVE, STATUS_INACTIVE
from routeslots.core.errors import (
    AllocationFailed,
    AlreadyAssigned,
    CapacityExceeded,
    CustomerNotFound,
    InvalidRange,
    InvalidRequest,
    classify_integrity_error,
)
from routeslots.models.customer import Customer
from routeslots.models.route_assignment import RouteAssignment
from routeslots.services.allocation.slots import iter_free_slots, lock_route

logger = logging.getLogger(__name__)


def normalize_customer_ids(customer_ids) -> list[int]:
    """Positive integer ids, first occurrence order, duplicates removed."""
    if not customer_ids:
        raise InvalidRequest("Send at least one customer in customer_ids.")
    seen: set[int] = set()
    ids: list[int] = []
    for raw in customer_ids:
        try:
            cid = int(raw)
        except (TypeError, ValueError):
            raise InvalidRequest(f"Invalid customer id: {raw!r}.") from None
        if cid <= 0:
            raise InvalidRequest(f"Invalid customer id: {raw!r}.")
        if cid not in seen:
            seen.add(cid)
            ids.append(cid)
    if len(ids) > BULK_ASSIGN_MAX_CUSTOMERS:
        raise InvalidRequest(
            f"At most {BULK_ASSIGN_MAX_CUSTOMERS} customers per request.",
            diagnostics={"requested": len(ids), "max": BULK_ASSIGN_MAX_CUSTOMERS},
        )
    return ids


def _lock_customers(db: Session, customer_ids: list[int]) -> None:
    """Customer rows FOR UPDATE in id order, so a concurrent single assignment of any of them waits or finishes first."""
    rows = (
        db.query(Customer)
        .filter(Customer.id.in_(customer_ids))
        .order_by(Customer.id.asc())
        .with_for_update()
        .all()
    )
    found = {row.id for row in rows}
    for cid in customer_ids:
        if cid not in found:
            raise CustomerNotFound(cid)


def _deactivate_elsewhere(db: Session, route_id: int, customer_ids: list[int]) -> list[int]:
    if not customer_ids:
        return []
    rows = (
        db.query(RouteAssignment)
        .filter(
            RouteAssignment.customer_id.in_(customer_ids),
            RouteAssignment.route_id != route_id,
            RouteAssignment.status == STATUS_ACTIVE,
        )
        .with_for_update()
        .all()
    )
    for row in rows:
        row.status = STATUS_INACTIVE
    return [r.id for r in rows]


def _assignment_out(row: RouteAssignment) -> dict:
    return {"id": row.id, "customer_id": row.customer_id, "slot": row.slot}


def bulk_allocate(db: Session, route_id: int, customer_ids, reset: bool = False) -> dict:
    """
    Place customer_ids on route_id. Caller owns the transaction; any raise means nothing may be committed.
    Raises RouteNotFound, InvalidRange, InvalidRequest, CustomerNotFound, AlreadyAssigned,
    CapacityExceeded or AllocationFailed.
    """
    ids = normalize_customer_ids(customer_ids)
    route = lock_route(db, route_id)
    range_min, range_max = route.range_min, route.range_max
    if range_max < range_min:
        raise InvalidRange(
            f"Route {route_id} has an invalid range ({range_min}-{range_max}).",
            diagnostics={"route_id": route_id, "range_min": range_min, "range_max": range_max},
        )
    capacity = route.capacity
    # Lock order matches the single allocator: route, customers, assignment rows
    _lock_customers(db, ids)

    removed = 0
    if reset:
        removed = (
            db.query(RouteAssignment)
            .filter(RouteAssignment.route_id == route_id)
            .delete(synchronize_session=False)
        )
        db.expire_all()
        logger.info("Route %s: reset removed %s assignment row(s)", route_id, removed)

    rows = (
        db.query(RouteAssignment)
        .filter(RouteAssignment.route_id == route_id)
        .order_by(RouteAssignment.slot.asc())
        .with_for_update()
        .all()
    )
    by_customer = {r.customer_id: r for r in rows}

    new_ids: list[int] = []
    to_reactivate: list[RouteAssignment] = []
    already_active: list[int] = []
    for cid in ids:
        row = by_customer.get(cid)
        if row is None:
            new_ids.append(cid)
        elif row.is_active:
            already_active.append(cid)
        else:
            to_reactivate.append(row)

    used = sum(1 for r in rows if r.is_active)
    needed = len(new_ids) + len(to_reactivate)
    if needed == 0:
        raise AlreadyAssigned(route_id, already_active)
    if capacity - used < needed:
        raise CapacityExceeded(route_id, capacity, used, len(new_ids), len(to_reactivate))

    active = {r.slot for r in rows if r.is_active}
    # Any stored slot on the route is off limits, inactive rows included
    scan = iter_free_slots(range_min, range_max, {r.slot for r in rows})

    reactivated: list[RouteAssignment] = []
    created: list[RouteAssignment] = []
    unplaced: list[int] = []
    try:
        for row in to_reactivate:
            if range_min <= row.slot <= range_max and row.slot not in active:
                active.add(row.slot)
            else:
                slot = next(scan, None)
                if slot is None:
                    unplaced.append(row.customer_id)
                    continue
                row.slot = slot
                active.add(slot)
            row.status = STATUS_ACTIVE
            reactivated.append(row)

        for cid in new_ids:
            slot = next(scan, None)
            if slot is None:
                unplaced.extend(new_ids[len(created):])
                break
            row = RouteAssignment(route_id=route_id, customer_id=cid, slot=slot, status=STATUS_ACTIVE)
            db.add(row)
            created.append(row)

        placed = [r.customer_id for r in reactivated] + [r.customer_id for r in created]
        deactivated_ids = _deactivate_elsewhere(db, route_id, placed)
        db.flush()
    except IntegrityError as exc:
        reason = classify_integrity_error(exc)
        logger.error("Route %s: bulk assignment hit a store conflict (%s)", route_id, reason, exc_info=True)
        raise AllocationFailed(
            f"Bulk assignment to route {route_id} conflicted with stored rows.",
            tips=["No changes were saved. Retry the request."],
            diagnostics={"route_id": route_id, "reason": reason},
        ) from exc

    if unplaced:
        logger.warning(
            "Route %s: %s customer(s) left unplaced, inactive rows hold the remaining slots",
            route_id,
            len(unplaced),
        )
    logger.info(
        "Route %s: bulk requested=%s created=%s reactivated=%s already_active=%s unplaced=%s",
        route_id,
        len(ids),
        len(created),
        len(reactivated),
        len(already_active),
        len(unplaced),
    )
    return {
        "ok": True,
        "meta": {
            "route_id": route_id,
            "requested": len(ids),
            "created": len(created),
            "reactivated": len(reactivated),
            "already_active": len(already_active),
            "unplaced": len(unplaced),
            "removed_by_reset": removed,
            "deactivated_elsewhere": len(deactivated_ids),
            "range_min": range_min,
            "range_max": range_max,
        },
        "created": [_assignment_out(r) for r in created],
        "reactivated": [_assignment_out(r) for r in reactivated],
        "already_active": already_active,
        "unplaced": unplaced,
    }
