"""
Cities and customers API (minimal: create, read, list, delete customer).
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from routeslots.db.session import get_db
from routeslots.services import catalog_service

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateCityRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)


class CreateCustomerRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    city_id: int | None = None


# --- Cities ---


@router.get("/cities")
def list_cities(db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"data": catalog_service.list_cities(db)}


@router.post("/cities")
def create_city(body: CreateCityRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    return catalog_service.create_city(db, body.name)


@router.get("/cities/{city_id}")
def get_city(city_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return catalog_service.get_city(db, city_id)


# --- Customers ---


@router.get("/customers")
def list_customers(
    db: Session = Depends(get_db),
    q: str | None = Query(None),
    city_id: int | None = Query(None),
    status: str | None = Query(None),
    page: int | None = Query(None, ge=1),
    page_size: int | None = Query(None, ge=1),
    offset: int | None = Query(None, ge=0),
    limit: int | None = Query(None, ge=1),
) -> dict[str, Any]:
    return catalog_service.list_customers(
        db,
        q=q,
        city_id=city_id,
        status=status,
        page=page,
        page_size=page_size,
        offset=offset,
        limit=limit,
    )


@router.post("/customers")
def create_customer(body: CreateCustomerRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    return catalog_service.create_customer(db, body.name, city_id=body.city_id)


@router.get("/customers/{customer_id}")
def get_customer(customer_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Customer plus its active route and slot, if any."""
    return catalog_service.get_customer(db, customer_id)


@router.delete("/customers/{customer_id}")
def delete_customer(customer_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    logger.info("Delete customer %s requested", customer_id)
    return catalog_service.delete_customer(db, customer_id)
