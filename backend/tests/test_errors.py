from types import SimpleNamespace

from sqlalchemy.exc import IntegrityError

from routeslots.core.errors import (
    CONFLICT_CUSTOMER,
    CONFLICT_FOREIGN_KEY,
    CONFLICT_NAME,
    CONFLICT_OTHER,
    CONFLICT_SLOT,
    CapacityExceeded,
    NoFreeSlot,
    classify_integrity_error,
)


class _PgError(Exception):
    def __init__(self, message: str, pgcode: str, constraint: str | None) -> None:
        super().__init__(message)
        self.pgcode = pgcode
        self.diag = SimpleNamespace(constraint_name=constraint)


def _wrap(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, orig)


def test_sqlite_unique_messages_are_classified() -> None:
    slot = _wrap(Exception("UNIQUE constraint failed: route_assignments.route_id, route_assignments.slot"))
    customer = _wrap(Exception("UNIQUE constraint failed: route_assignments.route_id, route_assignments.customer_id"))
    name = _wrap(Exception("UNIQUE constraint failed: routes.city_id, routes.name"))
    assert classify_integrity_error(slot) == CONFLICT_SLOT
    assert classify_integrity_error(customer) == CONFLICT_CUSTOMER
    assert classify_integrity_error(name) == CONFLICT_NAME


def test_postgres_constraint_names_are_classified() -> None:
    orig = _PgError("duplicate key value violates unique constraint", "23505", "uq_route_assignments_route_slot")
    assert classify_integrity_error(_wrap(orig)) == CONFLICT_SLOT
    fk = _PgError("update or delete on table", "23503", "route_assignments_route_id_fkey")
    assert classify_integrity_error(_wrap(fk)) == CONFLICT_FOREIGN_KEY


def test_unknown_integrity_error_is_other() -> None:
    assert classify_integrity_error(_wrap(Exception("NOT NULL constraint failed: routes.name"))) == CONFLICT_OTHER


def test_capacity_errors_carry_counts() -> None:
    exc = NoFreeSlot(route_id=7, range_min=1, range_max=3, used=3)
    body = exc.to_dict()
    assert body["code"] == "NO_FREE_SLOT"
    assert body["diagnostics"]["capacity"] == 3
    assert body["diagnostics"]["free"] == 0
    assert exc.status_code == 409

    exc = CapacityExceeded(route_id=7, capacity=4, used=0, new_count=5, reactivate_count=0)
    assert exc.diagnostics["requested"] == 5
    assert exc.diagnostics["free"] == 4
    assert "Total to activate: 5" in exc.tips
