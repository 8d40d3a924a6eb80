"""
Assignments API: assign one customer to a route, unassign, and row-level admin.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from routeslots.db.session import get_db
from routeslots.services import assignment_service

router = APIRouter()
logger = logging.getLogger(__name__)


class AssignRequest(BaseModel):
    customer_id: int
    route_id: int
    required_city_id: int | None = Field(None, description="Reject the route unless it belongs to this city")
    slot: int | None = Field(None, ge=0, description="Pin the customer to this slot instead of the first free one")


class StatusRequest(BaseModel):
    status: str


class UpdateAssignmentRequest(BaseModel):
    slot: int | None = Field(None, ge=0)
    status: str | None = None


@router.get("/assignments")
def list_assignments(
    db: Session = Depends(get_db),
    route_id: int | None = Query(None),
    customer_id: int | None = Query(None),
    status: str | None = Query(None),
    order_by: str | None = Query(None),
    order_dir: str | None = Query(None, description="asc or desc"),
    page: int | None = Query(None, ge=1),
    page_size: int | None = Query(None, ge=1),
    offset: int | None = Query(None, ge=0),
    limit: int | None = Query(None, ge=1),
) -> dict[str, Any]:
    """Ordered by slot unless order_by names another whitelisted column."""
    return assignment_service.list_assignments(
        db,
        route_id=route_id,
        customer_id=customer_id,
        status=status,
        order_by=order_by,
        order_dir=order_dir,
        page=page,
        page_size=page_size,
        offset=offset,
        limit=limit,
    )


@router.post("/assignments")
def assign_customer(body: AssignRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Attach the customer to the route at the chosen slot, or the lowest free slot (or keep/reuse its slot)."""
    return assignment_service.assign_customer(
        db, body.customer_id, body.route_id, required_city_id=body.required_city_id, slot=body.slot
    )


@router.get("/assignments/{assignment_id}")
def get_assignment(assignment_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return assignment_service.get_assignment(db, assignment_id)


@router.put("/assignments/{assignment_id}")
def update_assignment(
    assignment_id: int, body: UpdateAssignmentRequest, db: Session = Depends(get_db)
) -> dict[str, Any]:
    """Renumber and/or change status. Activation runs the allocator checks (range, holder, one active route)."""
    logger.info("Update assignment %s: slot=%s status=%s", assignment_id, body.slot, body.status)
    assignment = assignment_service.update_assignment(db, assignment_id, slot=body.slot, status=body.status)
    return {"message": "Assignment updated", "assignment": assignment}


@router.patch("/assignments/{assignment_id}/status")
def set_assignment_status(assignment_id: int, body: StatusRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    assignment = assignment_service.set_assignment_status(db, assignment_id, body.status)
    return {"message": "Status updated", "assignment": assignment}


@router.delete("/assignments/{assignment_id}")
def delete_assignment(assignment_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return assignment_service.delete_assignment(db, assignment_id)


@router.delete("/customers/{customer_id}/route")
def unassign_customer(customer_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Deactivate the customer's active assignment; history is kept."""
    return assignment_service.unassign_customer(db, customer_id)
