"""
Single-slot allocator: put one customer on one route at one slot.

Order of work inside one transaction:
1. Lock route and customer rows; route must exist, be active and match the required city.
2. Already active on this route -> return the stored slot, no write.
3. Deactivate the customer's active rows on other routes (one active route per customer).
4. A prior row for (route, customer) whose slot is still in range is reactivated as is.
5. Otherwise the lowest slot not held by an active row is written under a savepoint.
   The store's (route, slot) constraint also covers inactive rows, so that write can
   lose; the loop then recomputes with the failed slot excluded, up to
   settings.slot_write_attempts writes in total.

An operator may pin the slot instead. A pinned slot must be inside the range and not
held by another active row; it is written once, and a store collision is reported as
AllocationFailed rather than retried on a different slot.
"""
import logging
from collections import namedtuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from routeslots.config import settings
from routeslots.core.constants import STATUS_ACTIVE, STATUS_INACTIVE
from routeslots.core.errors import (
    CONFLICT_CUSTOMER,
    CONFLICT_SLOT,
    AllocationFailed,
    CityMismatch,
    CustomerNotFound,
    InvalidRange,
    NoFreeSlot,
    RouteInactive,
    SlotTaken,
    classify_integrity_error,
)
from routeslots.models.customer import Customer
from routeslots.models.route import Route
from routeslots.models.route_assignment import RouteAssignment
from routeslots.services.allocation.slots import active_slots, lock_route, lowest_free_slot, slot_held_by_other

logger = logging.getLogger(__name__)

# Outcomes reported to callers
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_REACTIVATED = "reactivated"
OUTCOME_RENUMBERED = "renumbered"
OUTCOME_CREATED = "created"

# Write loop states
STATE_COMPUTE_CANDIDATE = "compute_candidate"
STATE_ATTEMPT_WRITE = "attempt_write"
STATE_RETRY = "retry"
STATE_SUCCESS = "success"
STATE_EXHAUSTED = "exhausted"

SlotAssignment = namedtuple(
    "SlotAssignment",
    ["assignment_id", "route_id", "customer_id", "slot", "outcome", "attempts", "deactivated_ids"],
)


def _lock_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).with_for_update().one_or_none()
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def _check_preconditions(route: Route, required_city_id: int | None) -> None:
    if not route.is_active:
        raise RouteInactive(route.id)
    if required_city_id is not None and route.city_id != required_city_id:
        raise CityMismatch(route.id, route.city_id, required_city_id)


def _pair_row(db: Session, route_id: int, customer_id: int) -> RouteAssignment | None:
    return (
        db.query(RouteAssignment)
        .filter(RouteAssignment.route_id == route_id, RouteAssignment.customer_id == customer_id)
        .one_or_none()
    )


def _deactivate_elsewhere(db: Session, customer_id: int, route_id: int) -> list[int]:
    """Deactivate the customer's active rows on every other route. Returns their ids."""
    rows = (
        db.query(RouteAssignment)
        .filter(
            RouteAssignment.customer_id == customer_id,
            RouteAssignment.route_id != route_id,
            RouteAssignment.status == STATUS_ACTIVE,
        )
        .with_for_update()
        .all()
    )
    for row in rows:
        row.status = STATUS_INACTIVE
    if rows:
        db.flush()
        logger.info(
            "Customer %s: deactivated assignments %s on routes %s",
            customer_id,
            [r.id for r in rows],
            [r.route_id for r in rows],
        )
    return [r.id for r in rows]


def _write_slot(
    db: Session,
    route_id: int,
    customer_id: int,
    prior_id: int | None,
    slot: int,
    status: str = STATUS_ACTIVE,
) -> RouteAssignment:
    """Create or renumber the (route, customer) row under a savepoint. IntegrityError propagates after the savepoint rolls back."""
    with db.begin_nested():
        if prior_id is not None:
            # A rolled back savepoint expires the row; reload it for every attempt
            row = db.get(RouteAssignment, prior_id)
            row.slot = slot
            row.status = status
        else:
            row = RouteAssignment(route_id=route_id, customer_id=customer_id, slot=slot, status=status)
            db.add(row)
        db.flush()
    return row


def _check_slot_in_range(route: Route, slot: int) -> None:
    if not route.range_min <= slot <= route.range_max:
        raise InvalidRange(
            f"Slot {slot} is outside route {route.id} range ({route.range_min}-{route.range_max}).",
            diagnostics={
                "route_id": route.id,
                "slot": slot,
                "range_min": route.range_min,
                "range_max": route.range_max,
            },
        )


def _active_holder(db: Session, route_id: int, slot: int, exclude_assignment_id: int | None) -> RouteAssignment | None:
    q = db.query(RouteAssignment).filter(
        RouteAssignment.route_id == route_id,
        RouteAssignment.slot == slot,
        RouteAssignment.status == STATUS_ACTIVE,
    )
    if exclude_assignment_id is not None:
        q = q.filter(RouteAssignment.id != exclude_assignment_id)
    return q.first()


def _write_pinned(
    db: Session,
    route: Route,
    customer_id: int,
    prior_id: int | None,
    slot: int,
    status: str = STATUS_ACTIVE,
) -> RouteAssignment:
    """One write at an operator-chosen slot; (route, slot) or (route, customer) collisions become AllocationFailed."""
    try:
        return _write_slot(db, route.id, customer_id, prior_id, slot, status=status)
    except IntegrityError as exc:
        reason = classify_integrity_error(exc)
        if reason not in (CONFLICT_SLOT, CONFLICT_CUSTOMER):
            raise
        logger.warning("Route %s: pinned slot %s for customer %s collided (%s)", route.id, slot, customer_id, reason)
        raise AllocationFailed(
            f"Slot {slot} on route {route.id} is already stored on another assignment row.",
            tips=["An inactive assignment still keeps this slot. Delete that row or choose another slot."],
            diagnostics={
                "route_id": route.id,
                "customer_id": customer_id,
                "slot": slot,
                "attempts": 1,
                "reason": reason,
            },
        ) from exc


def _allocate_pinned(
    db: Session,
    route: Route,
    customer_id: int,
    prior: RouteAssignment | None,
    slot: int,
) -> SlotAssignment:
    prior_id = prior.id if prior is not None else None
    prior_slot = prior.slot if prior is not None else None
    holder = _active_holder(db, route.id, slot, prior_id)
    if holder is not None:
        raise SlotTaken(route.id, slot, holder.customer_id)

    deactivated_ids = _deactivate_elsewhere(db, customer_id, route.id)
    row = _write_pinned(db, route, customer_id, prior_id, slot)
    if prior_id is None:
        outcome = OUTCOME_CREATED
    elif prior_slot == slot:
        outcome = OUTCOME_REACTIVATED
    else:
        outcome = OUTCOME_RENUMBERED
    logger.info("Route %s: customer %s %s at pinned slot %s", route.id, customer_id, outcome, slot)
    return SlotAssignment(row.id, route.id, customer_id, row.slot, outcome, 1, deactivated_ids)


def _allocate_with_retry(
    db: Session,
    route: Route,
    customer_id: int,
    prior: RouteAssignment | None,
    deactivated_ids: list[int],
) -> SlotAssignment:
    max_attempts = settings.slot_write_attempts
    prior_id = prior.id if prior is not None else None
    state = STATE_COMPUTE_CANDIDATE
    attempts = 0
    failed_slots: list[int] = []
    reason: str | None = None
    candidate: int | None = None
    row: RouteAssignment | None = None

    while True:
        if state == STATE_COMPUTE_CANDIDATE:
            used = active_slots(db, route.id, exclude_assignment_id=prior_id)
            candidate = lowest_free_slot(route.range_min, route.range_max, used | set(failed_slots))
            if candidate is not None:
                state = STATE_ATTEMPT_WRITE
            elif not failed_slots:
                raise NoFreeSlot(route.id, route.range_min, route.range_max, len(used))
            else:
                # Every slot that looked free collided with a stored row
                state = STATE_EXHAUSTED

        elif state == STATE_ATTEMPT_WRITE:
            attempts += 1
            try:
                row = _write_slot(db, route.id, customer_id, prior_id, candidate)
                state = STATE_SUCCESS
            except IntegrityError as exc:
                reason = classify_integrity_error(exc)
                if reason not in (CONFLICT_SLOT, CONFLICT_CUSTOMER):
                    raise
                failed_slots.append(candidate)
                state = STATE_RETRY if attempts < max_attempts else STATE_EXHAUSTED

        elif state == STATE_RETRY:
            logger.warning(
                "Route %s: slot %s for customer %s collided (%s), attempt %s/%s",
                route.id,
                candidate,
                customer_id,
                reason,
                attempts,
                max_attempts,
            )
            if reason == CONFLICT_CUSTOMER and prior_id is None:
                # A concurrent writer created the (route, customer) row; update it instead
                existing = _pair_row(db, route.id, customer_id)
                prior_id = existing.id if existing is not None else None
            state = STATE_COMPUTE_CANDIDATE

        elif state == STATE_SUCCESS:
            outcome = OUTCOME_RENUMBERED if prior_id is not None else OUTCOME_CREATED
            logger.info(
                "Route %s: customer %s %s at slot %s after %s attempt(s)",
                route.id,
                customer_id,
                outcome,
                row.slot,
                attempts,
            )
            return SlotAssignment(row.id, route.id, customer_id, row.slot, outcome, attempts, deactivated_ids)

        elif state == STATE_EXHAUSTED:
            logger.error(
                "Route %s: could not place customer %s after %s attempt(s); failed slots %s, last reason %s",
                route.id,
                customer_id,
                attempts,
                failed_slots,
                reason,
            )
            raise AllocationFailed(
                f"Could not reserve a slot on route {route.id} after {attempts} attempt(s).",
                tips=["Slots that looked free were taken by stored rows. Retry the request."],
                diagnostics={
                    "route_id": route.id,
                    "customer_id": customer_id,
                    "attempts": attempts,
                    "failed_slots": failed_slots,
                    "reason": reason,
                },
            )


def allocate_slot(
    db: Session,
    customer_id: int,
    route_id: int,
    required_city_id: int | None = None,
    slot: int | None = None,
) -> SlotAssignment:
    """
    Assign or move one customer to route_id, at `slot` when given. Caller owns the transaction (commit/rollback).
    Raises RouteNotFound, CustomerNotFound, RouteInactive, CityMismatch, InvalidRange, SlotTaken,
    NoFreeSlot or AllocationFailed.
    """
    route = lock_route(db, route_id)
    _lock_customer(db, customer_id)
    _check_preconditions(route, required_city_id)
    if slot is not None:
        _check_slot_in_range(route, slot)

    prior = _pair_row(db, route.id, customer_id)
    if prior is not None and prior.is_active and (slot is None or prior.slot == slot):
        logger.info("Route %s: customer %s already active at slot %s", route.id, customer_id, prior.slot)
        return SlotAssignment(prior.id, route.id, customer_id, prior.slot, OUTCOME_UNCHANGED, 0, [])

    if slot is not None:
        return _allocate_pinned(db, route, customer_id, prior, slot)

    deactivated_ids = _deactivate_elsewhere(db, customer_id, route.id)

    if (
        prior is not None
        and route.range_min <= prior.slot <= route.range_max
        and not slot_held_by_other(db, route.id, prior.slot, prior.id)
    ):
        prior.status = STATUS_ACTIVE
        db.flush()
        logger.info("Route %s: customer %s reactivated at previous slot %s", route.id, customer_id, prior.slot)
        return SlotAssignment(prior.id, route.id, customer_id, prior.slot, OUTCOME_REACTIVATED, 1, deactivated_ids)

    return _allocate_with_retry(db, route, customer_id, prior, deactivated_ids)


def renumber_inactive(db: Session, route: Route, row: RouteAssignment, slot: int) -> RouteAssignment:
    """Move an assignment to another slot of its route and leave it inactive. Caller holds the route lock."""
    _check_slot_in_range(route, slot)
    return _write_pinned(db, route, row.customer_id, row.id, slot, status=STATUS_INACTIVE)


def release_customer(db: Session, customer_id: int) -> list[int]:
    """Deactivate every active assignment of the customer. Returns the deactivated ids."""
    _lock_customer(db, customer_id)
    rows = (
        db.query(RouteAssignment)
        .filter(RouteAssignment.customer_id == customer_id, RouteAssignment.status == STATUS_ACTIVE)
        .with_for_update()
        .all()
    )
    for row in rows:
        row.status = STATUS_INACTIVE
    db.flush()
    if rows:
        logger.info("Customer %s released from routes %s", customer_id, [r.route_id for r in rows])
    return [r.id for r in rows]
