"""
Centralized error handling for route and slot allocation failures.

Every failure carries a stable machine-readable `kind`, a human-readable message,
optional tips for the operator and a diagnostics dict (counts, conflicting ids).
Routers stay thin: one exception handler renders AllocationError for every endpoint.
Store errors (IntegrityError) are classified here with a rule table so services can
tell a slot collision from a duplicate customer row without inspecting driver text.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from routeslots.core.constants import (
    UQ_ASSIGNMENT_ROUTE_CUSTOMER,
    UQ_ASSIGNMENT_ROUTE_SLOT,
    UQ_ROUTE_CITY_NAME,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants: status codes
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_INTERNAL_ERROR = 500


# ---------------------------------------------------------------------------
# Failure taxonomy
# ---------------------------------------------------------------------------


class AllocationError(Exception):
    """Base for every failure the allocator reports to its callers."""

    kind = "SERVER_ERROR"
    status_code = STATUS_INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        *,
        tips: list[str] | None = None,
        diagnostics: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.tips = list(tips or [])
        self.diagnostics = dict(diagnostics or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.kind,
            "message": self.message,
            "tips": self.tips,
            "diagnostics": self.diagnostics,
        }


# --- Validation (rejected before any write) ---


class InvalidRequest(AllocationError):
    kind = "BAD_REQUEST"
    status_code = STATUS_BAD_REQUEST


class InvalidRange(AllocationError):
    kind = "INVALID_RANGE"
    status_code = STATUS_BAD_REQUEST


# --- Invariant conflicts ---


class NotFound(AllocationError):
    kind = "NOT_FOUND"
    status_code = STATUS_NOT_FOUND


class RouteNotFound(NotFound):
    def __init__(self, route_id: int) -> None:
        super().__init__(f"Route {route_id} not found.", diagnostics={"route_id": route_id})


class CustomerNotFound(NotFound):
    def __init__(self, customer_id: int) -> None:
        super().__init__(f"Customer {customer_id} not found.", diagnostics={"customer_id": customer_id})


class CityNotFound(NotFound):
    def __init__(self, city_id: int) -> None:
        super().__init__(f"City {city_id} not found.", diagnostics={"city_id": city_id})


class AssignmentNotFound(NotFound):
    def __init__(self, assignment_id: int) -> None:
        super().__init__(
            f"Assignment {assignment_id} not found.", diagnostics={"assignment_id": assignment_id}
        )


class RouteInactive(AllocationError):
    kind = "ROUTE_INACTIVE"
    status_code = STATUS_CONFLICT

    def __init__(self, route_id: int) -> None:
        super().__init__(
            f"Route {route_id} is inactive; customers can only be assigned to active routes.",
            tips=["Activate the route first, or choose another route."],
            diagnostics={"route_id": route_id},
        )


class CityMismatch(AllocationError):
    kind = "CITY_MISMATCH"
    status_code = STATUS_CONFLICT

    def __init__(self, route_id: int, route_city_id: int, required_city_id: int) -> None:
        super().__init__(
            f"Route {route_id} belongs to city {route_city_id}, not to the required city {required_city_id}.",
            diagnostics={
                "route_id": route_id,
                "route_city_id": route_city_id,
                "required_city_id": required_city_id,
            },
        )


class RangeOverlap(AllocationError):
    """An active route already owns part of the requested interval. Built by services.overlap."""

    kind = "RANGE_OVERLAP"
    status_code = STATUS_CONFLICT


class DuplicateName(AllocationError):
    kind = "DUPLICATE"
    status_code = STATUS_CONFLICT


# --- Capacity ---


def _capacity_counts(capacity: int, used: int, requested: int | None = None) -> dict[str, int]:
    counts = {"capacity": capacity, "used": used, "free": max(0, capacity - used)}
    if requested is not None:
        counts["requested"] = requested
    return counts


class NoFreeSlot(AllocationError):
    kind = "NO_FREE_SLOT"
    status_code = STATUS_CONFLICT

    def __init__(self, route_id: int, range_min: int, range_max: int, used: int) -> None:
        capacity = range_max - range_min + 1
        counts = _capacity_counts(capacity, used)
        super().__init__(
            f"Route {route_id} has no free slot in its range ({range_min}-{range_max}).",
            tips=[
                f"Range capacity: {capacity}",
                f"Currently used (active): {used}",
                f"Free: {counts['free']}",
                "Widen the route range or detach a customer first.",
            ],
            diagnostics={"route_id": route_id, "range_min": range_min, "range_max": range_max, **counts},
        )


class CapacityExceeded(AllocationError):
    kind = "CAPACITY_EXCEEDED"
    status_code = STATUS_CONFLICT

    def __init__(
        self,
        route_id: int,
        capacity: int,
        used: int,
        new_count: int,
        reactivate_count: int,
    ) -> None:
        requested = new_count + reactivate_count
        counts = _capacity_counts(capacity, used, requested)
        super().__init__(
            f"Route {route_id} does not have enough free slots for the selected customers.",
            tips=[
                f"Range capacity: {capacity}",
                f"Currently used (active): {used}",
                f"Free: {counts['free']}",
                f"New to create: {new_count}",
                f"To reactivate: {reactivate_count}",
                f"Total to activate: {requested}",
            ],
            diagnostics={
                "route_id": route_id,
                "new": new_count,
                "reactivate": reactivate_count,
                **counts,
            },
        )


class SlotTaken(AllocationError):
    kind = "SLOT_TAKEN"
    status_code = STATUS_CONFLICT

    def __init__(self, route_id: int, slot: int, holder_customer_id: int) -> None:
        super().__init__(
            f"Slot {slot} on route {route_id} is held by customer {holder_customer_id}.",
            tips=["Choose another slot, or leave the slot empty to take the first free one."],
            diagnostics={"route_id": route_id, "slot": slot, "holder_customer_id": holder_customer_id},
        )


class AlreadyAssigned(AllocationError):
    kind = "ALREADY_ASSIGNED"
    status_code = STATUS_CONFLICT

    def __init__(self, route_id: int, customer_ids: list[int]) -> None:
        super().__init__(
            f"All selected customers are already active on route {route_id}.",
            diagnostics={"route_id": route_id, "already_active": customer_ids},
        )


# --- Transient write conflicts ---


class AllocationFailed(AllocationError):
    kind = "ALLOCATION_FAILED"
    status_code = STATUS_CONFLICT


# --- Referential integrity ---


class HasDependents(AllocationError):
    kind = "HAS_DEPENDENTS"
    status_code = STATUS_CONFLICT


# ---------------------------------------------------------------------------
# Store error rules: (predicate, target). First match wins.
# Add new constraints here instead of scattering string checks in services.
# ---------------------------------------------------------------------------

FOREIGN_KEY_VIOLATION_SQLSTATE = "23503"

CONFLICT_SLOT = "slot"
CONFLICT_CUSTOMER = "customer"
CONFLICT_NAME = "name"
CONFLICT_FOREIGN_KEY = "foreign_key"
CONFLICT_OTHER = "other"


def _mentions(*needles: str) -> Callable[[str], bool]:
    def predicate(msg: str) -> bool:
        return any(n in msg for n in needles)

    return predicate


# PostgreSQL names the constraint; SQLite lists the columns ("UNIQUE constraint failed: t.a, t.b").
INTEGRITY_ERROR_RULES: list[tuple[Callable[[str], bool], str]] = [
    (_mentions(UQ_ASSIGNMENT_ROUTE_SLOT, "route_assignments.route_id, route_assignments.slot"), CONFLICT_SLOT),
    (
        _mentions(UQ_ASSIGNMENT_ROUTE_CUSTOMER, "route_assignments.route_id, route_assignments.customer_id"),
        CONFLICT_CUSTOMER,
    ),
    (_mentions(UQ_ROUTE_CITY_NAME, "routes.city_id, routes.name"), CONFLICT_NAME),
    (_mentions("FOREIGN KEY constraint failed", "violates foreign key constraint"), CONFLICT_FOREIGN_KEY),
]


def classify_integrity_error(exc: IntegrityError) -> str:
    """
    Map an IntegrityError to the constraint family it violated.
    Returns one of CONFLICT_SLOT, CONFLICT_CUSTOMER, CONFLICT_NAME, CONFLICT_FOREIGN_KEY, CONFLICT_OTHER.
    """
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None) or ""
    msg = f"{constraint} {orig if orig is not None else exc}"
    for predicate, target in INTEGRITY_ERROR_RULES:
        if predicate(msg):
            return target
    if getattr(orig, "pgcode", None) == FOREIGN_KEY_VIOLATION_SQLSTATE:
        return CONFLICT_FOREIGN_KEY
    return CONFLICT_OTHER


# ---------------------------------------------------------------------------
# HTTP rendering
# ---------------------------------------------------------------------------


async def allocation_error_handler(request: Request, exc: AllocationError) -> JSONResponse:
    if exc.status_code >= STATUS_INTERNAL_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AllocationError, allocation_error_handler)
