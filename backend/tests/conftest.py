"""Pytest configuration and fixtures: in-memory SQLite store and an API client bound to it."""
import os

# Before any routeslots import: the module-level engine must not need PostgreSQL
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from routeslots.core.constants import STATUS_ACTIVE
from routeslots.db.base import Base
from routeslots.db.session import get_db
from routeslots.main import app
from routeslots.models import City, Customer, Route, RouteAssignment


def _sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite: let SQLAlchemy emit BEGIN itself so SAVEPOINT works; enforce foreign keys
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture
def engine():
    engine = _sqlite_engine()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# --- Seed helpers (write straight through the ORM, bypassing the allocator) ---


@pytest.fixture
def city(db):
    row = City(name="Springfield")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def make_customer(db):
    def _make(name: str = "Customer", city_id: int | None = None) -> Customer:
        row = Customer(name=name, city_id=city_id)
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def make_route(db, city):
    def _make(range_min: int, range_max: int, name: str | None = None, status: str = STATUS_ACTIVE, city_id: int | None = None) -> Route:
        row = Route(
            city_id=city_id if city_id is not None else city.id,
            name=name or f"Route {range_min}-{range_max}",
            range_min=range_min,
            range_max=range_max,
            status=status,
        )
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def make_assignment(db):
    def _make(route: Route, customer: Customer, slot: int, status: str = STATUS_ACTIVE) -> RouteAssignment:
        row = RouteAssignment(route_id=route.id, customer_id=customer.id, slot=slot, status=status)
        db.add(row)
        db.commit()
        return row

    return _make
