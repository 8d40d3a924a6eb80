import re

import pytest
from sqlalchemy import event

from routeslots.core.constants import STATUS_ACTIVE, STATUS_INACTIVE
from routeslots.core.errors import AlreadyAssigned, CapacityExceeded, CustomerNotFound, InvalidRequest, RouteNotFound
from routeslots.models import RouteAssignment
from routeslots.services import assignment_service


def _slots(db, route_id: int, status: str = STATUS_ACTIVE) -> dict[int, int]:
    """customer_id -> slot for the route's rows with this status."""
    db.expire_all()
    rows = (
        db.query(RouteAssignment)
        .filter(RouteAssignment.route_id == route_id, RouteAssignment.status == status)
        .all()
    )
    return {r.customer_id: r.slot for r in rows}


def test_batch_larger_than_capacity_writes_nothing(db, make_route, make_customer) -> None:
    route = make_route(1, 4)
    ids = [make_customer(f"C{i}").id for i in range(5)]

    with pytest.raises(CapacityExceeded) as info:
        assignment_service.bulk_assign(db, route.id, ids)

    diag = info.value.diagnostics
    assert (diag["capacity"], diag["used"], diag["free"], diag["requested"]) == (4, 0, 4, 5)
    assert db.query(RouteAssignment).count() == 0


def test_new_customers_fill_remaining_slots(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 3)
    ann = make_customer("Ann")
    make_assignment(route, ann, 2)
    bob, cid = make_customer("Bob"), make_customer("Cid")

    out = assignment_service.bulk_assign(db, route.id, [bob.id, cid.id])

    assert out["meta"]["created"] == 2
    assert [c["slot"] for c in out["created"]] == [1, 3]
    assert _slots(db, route.id) == {ann.id: 2, bob.id: 1, cid.id: 3}


def test_classification_and_reactivation_first(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 5)
    ann, bob, cid = make_customer("Ann"), make_customer("Bob"), make_customer("Cid")
    make_assignment(route, ann, 1)
    make_assignment(route, bob, 4, status=STATUS_INACTIVE)

    out = assignment_service.bulk_assign(db, route.id, [ann.id, bob.id, cid.id, cid.id])

    assert out["already_active"] == [ann.id]
    assert out["reactivated"] == [{"id": out["reactivated"][0]["id"], "customer_id": bob.id, "slot": 4}]
    assert [c["customer_id"] for c in out["created"]] == [cid.id]
    assert out["created"][0]["slot"] == 2
    assert out["meta"]["requested"] == 3
    assert _slots(db, route.id) == {ann.id: 1, bob.id: 4, cid.id: 2}


def test_reactivation_out_of_range_takes_next_free(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 10)
    ann = make_customer("Ann")
    make_assignment(route, ann, 9, status=STATUS_INACTIVE)
    route.range_max = 3
    db.commit()

    out = assignment_service.bulk_assign(db, route.id, [ann.id])
    assert out["reactivated"][0]["slot"] == 1


def test_all_already_active(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 3)
    ann = make_customer("Ann")
    make_assignment(route, ann, 1)

    with pytest.raises(AlreadyAssigned):
        assignment_service.bulk_assign(db, route.id, [ann.id])


def test_inactive_history_leaves_customers_unplaced(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 3)
    make_assignment(route, make_customer("Old"), 1, status=STATUS_INACTIVE)
    make_assignment(route, make_customer("Ann"), 2)
    cid, dee = make_customer("Cid"), make_customer("Dee")

    out = assignment_service.bulk_assign(db, route.id, [cid.id, dee.id])

    assert [c["slot"] for c in out["created"]] == [3]
    assert out["unplaced"] == [dee.id]
    assert out["meta"]["unplaced"] == 1
    assert _slots(db, route.id)[cid.id] == 3


def test_reset_clears_history_first(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 2)
    make_assignment(route, make_customer("Old"), 1, status=STATUS_INACTIVE)
    make_assignment(route, make_customer("Ann"), 2)
    cid, dee = make_customer("Cid"), make_customer("Dee")

    out = assignment_service.bulk_assign(db, route.id, [cid.id, dee.id], reset=True)

    assert out["meta"]["removed_by_reset"] == 2
    assert _slots(db, route.id) == {cid.id: 1, dee.id: 2}
    assert _slots(db, route.id, STATUS_INACTIVE) == {}


def test_bulk_moves_customers_off_other_routes(db, make_route, make_customer, make_assignment) -> None:
    a = make_route(1, 3, name="A")
    b = make_route(10, 12, name="B")
    ann = make_customer("Ann")
    make_assignment(a, ann, 1)

    out = assignment_service.bulk_assign(db, b.id, [ann.id])

    assert out["meta"]["deactivated_elsewhere"] == 1
    assert _slots(db, a.id) == {}
    assert _slots(db, b.id) == {ann.id: 10}


def test_validation(db, make_route, make_customer) -> None:
    route = make_route(1, 3)
    with pytest.raises(InvalidRequest):
        assignment_service.bulk_assign(db, route.id, [])
    with pytest.raises(InvalidRequest):
        assignment_service.bulk_assign(db, route.id, [0])
    with pytest.raises(RouteNotFound):
        assignment_service.bulk_assign(db, 999, [make_customer().id])
    with pytest.raises(CustomerNotFound):
        assignment_service.bulk_assign(db, route.id, [999])


def test_customer_rows_locked_between_route_and_assignment_rows(db, engine, make_route, make_customer) -> None:
    route = make_route(1, 5)
    ann = make_customer("Ann")
    bob = make_customer("Bob")
    statements: list[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    try:
        assignment_service.bulk_assign(db, route.id, [bob.id, ann.id])
    finally:
        event.remove(engine, "before_cursor_execute", _record)

    def first(table: str) -> int:
        return next(i for i, sql in enumerate(statements) if re.search(rf"FROM {table}\b", sql))

    assert first("routes") < first("customers") < first("route_assignments")
    assert "ORDER BY customers.id" in statements[first("customers")]
