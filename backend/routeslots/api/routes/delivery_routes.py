"""
Routes API: create/edit/status/delete delivery routes, occupancy, range suggestions
and bulk customer assignment.

Failures are AllocationError subclasses rendered by the app-wide handler
(code, message, tips, diagnostics).
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from routeslots.core.constants import STATUS_ACTIVE
from routeslots.db.session import get_db
from routeslots.services import assignment_service, route_service

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateRouteRequest(BaseModel):
    city_id: int
    name: str = Field(..., min_length=1, max_length=128)
    range_min: int | None = Field(None, description="First slot; defaults to the first free stretch when capacity is sent")
    range_max: int | None = None
    capacity: int | None = Field(None, description="Used when range_max is omitted: range_max = range_min + capacity - 1")
    status: str = STATUS_ACTIVE


class UpdateRouteRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    city_id: int | None = None
    range_min: int | None = None
    range_max: int | None = None


class StatusRequest(BaseModel):
    status: str


class BulkAssignRequest(BaseModel):
    customer_ids: list[int] = Field(..., min_length=1)
    reset: bool = False


# --- List / read ---


@router.get("/routes")
def list_routes(
    db: Session = Depends(get_db),
    q: str | None = Query(None, description="Name contains, or exact id"),
    city_id: int | None = Query(None),
    status: str | None = Query(None),
    order_by: str | None = Query(None),
    order_dir: str | None = Query(None, description="asc or desc"),
    page: int | None = Query(None, ge=1),
    page_size: int | None = Query(None, ge=1),
    offset: int | None = Query(None, ge=0),
    limit: int | None = Query(None, ge=1),
) -> dict[str, Any]:
    return route_service.list_routes(
        db,
        q=q,
        city_id=city_id,
        status=status,
        order_by=order_by,
        order_dir=order_dir,
        page=page,
        page_size=page_size,
        offset=offset,
        limit=limit,
    )


@router.get("/routes/suggest-range")
def suggest_range(
    range_min: int = Query(..., ge=0),
    range_max: int = Query(..., ge=0),
    exclude_route_id: int | None = Query(None),
    city_id: int | None = Query(None, description="Only used when overlap scope is per city"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """First free point at or after range_min, and the first free range of the same size."""
    return route_service.suggest_route_range(
        db, range_min, range_max, exclude_route_id=exclude_route_id, city_id=city_id
    )


@router.get("/routes/{route_id}")
def get_route(route_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return route_service.get_route(db, route_id)


@router.get("/routes/{route_id}/occupancy")
def route_occupancy(route_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Capacity, active slots used, free count and the lowest free slot."""
    return route_service.get_route_occupancy(db, route_id)


# --- Write ---


@router.post("/routes")
def create_route(body: CreateRouteRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    route = route_service.create_route(
        db,
        city_id=body.city_id,
        name=body.name,
        range_min=body.range_min,
        range_max=body.range_max,
        capacity=body.capacity,
        status=body.status,
    )
    return {"message": "Route created", "route": route}


@router.put("/routes/{route_id}")
def update_route(route_id: int, body: UpdateRouteRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    route = route_service.update_route(
        db,
        route_id,
        name=body.name,
        city_id=body.city_id,
        range_min=body.range_min,
        range_max=body.range_max,
    )
    return {"message": "Route updated", "route": route}


@router.patch("/routes/{route_id}/status")
def set_route_status(route_id: int, body: StatusRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    route = route_service.set_route_status(db, route_id, body.status)
    return {"message": "Status updated", "route": route}


@router.delete("/routes/{route_id}")
def delete_route(
    route_id: int,
    soft: bool = Query(False, description="Deactivate instead of deleting"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return route_service.delete_route(db, route_id, soft=soft)


@router.post("/routes/{route_id}/customers")
def bulk_assign(route_id: int, body: BulkAssignRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """
    Assign many customers to the route in one transaction.
    reset=true removes every existing assignment row of the route first.
    """
    if body.reset:
        logger.warning("Bulk assign with reset on route %s (%s customers)", route_id, len(body.customer_ids))
    return assignment_service.bulk_assign(db, route_id, body.customer_ids, reset=body.reset)
