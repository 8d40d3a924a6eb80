import pytest

from routeslots.config import settings
from routeslots.core.constants import OVERLAP_SCOPE_CITY, STATUS_ACTIVE, STATUS_INACTIVE
from routeslots.core.errors import (
    CityNotFound,
    DuplicateName,
    HasDependents,
    InvalidRange,
    RangeOverlap,
    RouteNotFound,
)
from routeslots.models import City, Route
from routeslots.services import route_service
from routeslots.services.allocation import find_conflict


def test_find_conflict_returns_lowest_id_active_route(db, make_route) -> None:
    a = make_route(1, 10, name="A")
    make_route(5, 15, name="B", status=STATUS_INACTIVE)
    c = make_route(20, 30, name="C")

    assert find_conflict(db, 8, 25).id == a.id
    assert find_conflict(db, 11, 19) is None
    assert find_conflict(db, 25, 40).id == c.id
    assert find_conflict(db, 1, 10, exclude_route_id=a.id) is None


def test_create_route_conflict_names_route_and_suggests(db, city, make_route) -> None:
    a = make_route(4, 8, name="A")

    with pytest.raises(RangeOverlap) as info:
        route_service.create_route(db, city.id, "B", range_min=2, range_max=5)

    exc = info.value
    assert exc.diagnostics["conflict"]["id"] == a.id
    assert '"A"' in exc.message
    assert exc.diagnostics["suggestion"] == {"first_free_from": 2, "first_free_to": 3, "same_size": {"min": 9, "max": 12}}
    assert "Available from 2 to 3." in exc.tips
    assert db.query(Route).count() == 1


def test_overlap_is_global_across_cities(db, make_route) -> None:
    other = City(name="Shelbyville")
    db.add(other)
    db.commit()
    make_route(1, 10, name="A")

    with pytest.raises(RangeOverlap):
        route_service.create_route(db, other.id, "B", range_min=5, range_max=12)


def test_city_scope_allows_overlap_in_other_city(db, make_route, monkeypatch) -> None:
    monkeypatch.setattr(settings, "overlap_scope", OVERLAP_SCOPE_CITY)
    other = City(name="Shelbyville")
    db.add(other)
    db.commit()
    make_route(1, 10, name="A")

    route = route_service.create_route(db, other.id, "B", range_min=5, range_max=12)
    assert (route["range_min"], route["range_max"]) == (5, 12)


def test_create_inactive_route_skips_overlap_check(db, city, make_route) -> None:
    make_route(1, 10, name="A")
    route = route_service.create_route(db, city.id, "B", range_min=5, range_max=12, status=STATUS_INACTIVE)
    assert route["status"] == STATUS_INACTIVE


def test_create_route_from_capacity_takes_first_stretch_that_fits(db, city, make_route) -> None:
    make_route(1, 3, name="A")
    make_route(6, 10, name="B")

    route = route_service.create_route(db, city.id, "C", capacity=3)
    assert (route["range_min"], route["range_max"]) == (11, 13)

    route = route_service.create_route(db, city.id, "D", capacity=2)
    assert (route["range_min"], route["range_max"]) == (4, 5)


def test_create_route_validation(db, city) -> None:
    with pytest.raises(InvalidRange):
        route_service.create_route(db, city.id, "A", range_min=5, range_max=4)
    with pytest.raises(InvalidRange):
        route_service.create_route(db, city.id, "A", range_min=-1, range_max=4)
    with pytest.raises(InvalidRange):
        route_service.create_route(db, city.id, "A", range_min=1)
    with pytest.raises(CityNotFound):
        route_service.create_route(db, 999, "A", range_min=1, range_max=4)


def test_duplicate_name_in_city(db, city, make_route) -> None:
    make_route(1, 10, name="North")
    with pytest.raises(DuplicateName):
        route_service.create_route(db, city.id, "north", range_min=20, range_max=30)


def test_update_bounds_rechecks_overlap_excluding_itself(db, make_route) -> None:
    a = make_route(1, 10, name="A")
    make_route(20, 30, name="B")

    route = route_service.update_route(db, a.id, range_min=1, range_max=15)
    assert route["range_max"] == 15

    with pytest.raises(RangeOverlap):
        route_service.update_route(db, a.id, range_max=25)


def test_update_cannot_strand_active_slots(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 10)
    make_assignment(route, make_customer("Ann"), 9)

    with pytest.raises(InvalidRange) as info:
        route_service.update_route(db, route.id, range_max=5)
    assert info.value.diagnostics["stranded_slots"] == [9]


def test_activation_rechecks_overlap(db, make_route) -> None:
    make_route(1, 10, name="A")
    b = make_route(5, 15, name="B", status=STATUS_INACTIVE)

    with pytest.raises(RangeOverlap):
        route_service.set_route_status(db, b.id, STATUS_ACTIVE)

    db.expire_all()
    assert db.get(Route, b.id).status == STATUS_INACTIVE


def test_deactivate_then_reactivate_without_conflict(db, make_route) -> None:
    a = make_route(1, 10, name="A")
    assert route_service.set_route_status(db, a.id, STATUS_INACTIVE)["status"] == STATUS_INACTIVE
    assert route_service.set_route_status(db, a.id, STATUS_ACTIVE)["status"] == STATUS_ACTIVE


def test_delete_route_with_assignments_has_dependents(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 10)
    make_assignment(route, make_customer("Ann"), 1, status=STATUS_INACTIVE)

    with pytest.raises(HasDependents) as info:
        route_service.delete_route(db, route.id)
    assert info.value.diagnostics["inactive"] == 1

    soft = route_service.delete_route(db, route.id, soft=True)
    assert soft["status"] == STATUS_INACTIVE


def test_delete_route_without_assignments(db, make_route) -> None:
    route = make_route(1, 10)
    assert route_service.delete_route(db, route.id)["deleted"] is True
    with pytest.raises(RouteNotFound):
        route_service.get_route(db, route.id)


def test_list_routes_filters_orders_and_pages(db, make_route) -> None:
    for i in range(5):
        make_route(i * 10 + 1, i * 10 + 5, name=f"Zone {i}")
    make_route(100, 110, name="Depot", status=STATUS_INACTIVE)

    out = route_service.list_routes(db, status=STATUS_ACTIVE, order_by="range_min", order_dir="asc", page=2, page_size=2)
    assert [r["name"] for r in out["data"]] == ["Zone 2", "Zone 3"]
    assert out["meta"]["total"] == 5
    assert out["meta"]["total_pages"] == 3
    assert out["meta"]["has_next"] is True
    assert out["meta"]["next_offset"] == 4

    out = route_service.list_routes(db, q="depot", order_by="not_a_column")
    assert [r["name"] for r in out["data"]] == ["Depot"]


def test_occupancy_and_suggestion(db, make_route, make_customer, make_assignment) -> None:
    route = make_route(1, 3)
    make_assignment(route, make_customer("Ann"), 1)
    make_assignment(route, make_customer("Bob"), 3)

    occ = route_service.get_route_occupancy(db, route.id)
    assert (occ["capacity"], occ["used"], occ["free"], occ["first_free_slot"]) == (3, 2, 1, 2)

    out = route_service.suggest_route_range(db, 2, 4)
    assert out["suggestion"]["first_free_from"] == 4
    assert out["suggestion"]["same_size"] == {"min": 4, "max": 6}
