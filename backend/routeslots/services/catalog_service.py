"""Cities and customers: the identities routes and assignments point at."""
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from routeslots.core.constants import STATUS_ACTIVE, STATUS_INACTIVE, STATUSES
from routeslots.core.errors import CityNotFound, CustomerNotFound, DuplicateName, HasDependents, InvalidRequest
from routeslots.db.session import transaction_scope
from routeslots.models.city import City
from routeslots.models.customer import Customer
from routeslots.models.route_assignment import RouteAssignment
from routeslots.services.listing import paginate, resolve_window

logger = logging.getLogger(__name__)


def serialize_city(city: City) -> dict:
    return {"id": city.id, "name": city.name}


def serialize_customer(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "city_id": customer.city_id,
        "name": customer.name,
        "status": customer.status,
    }


def _clean_name(name: str | None, what: str) -> str:
    value = (name or "").strip()
    if not value:
        raise InvalidRequest(f"{what} name is required.")
    return value


# --- Cities ---


def create_city(db: Session, name: str) -> dict:
    name = _clean_name(name, "City")
    with transaction_scope(db):
        if db.query(City.id).filter(func.lower(City.name) == name.lower()).first() is not None:
            raise DuplicateName(f'City "{name}" already exists.', diagnostics={"name": name})
        city = City(name=name)
        db.add(city)
        db.flush()
        logger.info("City created id=%s name=%s", city.id, name)
        return serialize_city(city)


def get_city(db: Session, city_id: int) -> dict:
    city = db.get(City, city_id)
    if city is None:
        raise CityNotFound(city_id)
    return serialize_city(city)


def list_cities(db: Session) -> list[dict]:
    return [serialize_city(c) for c in db.query(City).order_by(City.name.asc()).all()]


# --- Customers ---


def create_customer(db: Session, name: str, city_id: int | None = None) -> dict:
    name = _clean_name(name, "Customer")
    with transaction_scope(db):
        if city_id is not None and db.get(City, city_id) is None:
            raise CityNotFound(city_id)
        customer = Customer(name=name, city_id=city_id, status=STATUS_ACTIVE)
        db.add(customer)
        db.flush()
        return serialize_customer(customer)


def get_customer(db: Session, customer_id: int) -> dict:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    out = serialize_customer(customer)
    active = (
        db.query(RouteAssignment)
        .filter(RouteAssignment.customer_id == customer_id, RouteAssignment.status == STATUS_ACTIVE)
        .first()
    )
    out["route"] = {"route_id": active.route_id, "slot": active.slot} if active else None
    return out


def list_customers(
    db: Session,
    q: str | None = None,
    city_id: int | None = None,
    status: str | None = None,
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.query(Customer)
    if q and q.strip():
        term = q.strip()
        conditions = [Customer.name.ilike(f"%{term}%")]
        if term.isdigit():
            conditions.append(Customer.id == int(term))
        query = query.filter(or_(*conditions))
    if city_id is not None:
        query = query.filter(Customer.city_id == city_id)
    if status:
        if status not in STATUSES:
            raise InvalidRequest(f"Invalid status {status!r}.")
        query = query.filter(Customer.status == status)
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    rows, meta = paginate(query, resolve_window(page, page_size, offset, limit))
    return {"data": [serialize_customer(c) for c in rows], "meta": meta}


def delete_customer(db: Session, customer_id: int) -> dict:
    """Refuses while any assignment row (active or history) references the customer."""
    with transaction_scope(db):
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFound(customer_id)
        counts = dict(
            db.query(RouteAssignment.status, func.count(RouteAssignment.id))
            .filter(RouteAssignment.customer_id == customer_id)
            .group_by(RouteAssignment.status)
            .all()
        )
        if counts:
            raise HasDependents(
                f"Customer {customer_id} has route assignments and cannot be deleted.",
                tips=["Unassign the customer and delete its assignment rows first, or mark it inactive."],
                diagnostics={
                    "customer_id": customer_id,
                    "active": counts.get(STATUS_ACTIVE, 0),
                    "inactive": counts.get(STATUS_INACTIVE, 0),
                },
            )
        db.delete(customer)
        db.flush()
        logger.info("Customer %s deleted", customer_id)
    return {"ok": True, "id": customer_id, "deleted": True}
