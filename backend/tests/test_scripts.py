from sqlalchemy import text

from routeslots.core.constants import STATUS_INACTIVE
from scripts import audit_invariants, clear_allocation_tables, rebuild_schema


def _count(conn, table: str) -> int:
    return conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()


def test_rebuild_drops_only_project_tables_children_first() -> None:
    assert rebuild_schema.drop_order() == ["route_assignments", "routes", "customers", "cities", "alembic_version"]


def test_clear_one_route_then_everything(db, engine, make_route, make_customer, make_assignment) -> None:
    a = make_route(1, 5, name="A")
    b = make_route(10, 12, name="B")
    make_assignment(a, make_customer("Ann"), 1)
    make_assignment(a, make_customer("Bob"), 2, status=STATUS_INACTIVE)
    make_assignment(b, make_customer("Cid"), 10)
    a_id = a.id
    # Release the session's connection before using the engine directly
    db.rollback()

    with engine.begin() as conn:
        assert clear_allocation_tables.clear_route(conn, a_id) == 2
    with engine.begin() as conn:
        assert _count(conn, "route_assignments") == 1
        assert _count(conn, "routes") == 2

    with engine.begin() as conn:
        clear_allocation_tables.clear_all(conn)
    with engine.begin() as conn:
        assert _count(conn, "route_assignments") == 0
        assert _count(conn, "routes") == 0
        assert _count(conn, "customers") == 3


def test_audit_flags_duplicate_active_customer(db, engine, make_route, make_customer, make_assignment) -> None:
    ann = make_customer("Ann")
    make_assignment(make_route(1, 5, name="A"), ann, 1)
    make_assignment(make_route(10, 12, name="B"), ann, 10)
    db.rollback()

    failing = []
    with engine.begin() as conn:
        for label, sql in audit_invariants.CHECKS:
            if conn.execute(text(sql)).fetchall():
                failing.append(label)
    assert failing == ["customers with more than one active assignment"]
