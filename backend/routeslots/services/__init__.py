from routeslots.services.assignment_service import assign_customer, bulk_assign, unassign_customer
from routeslots.services.route_service import create_route, set_route_status, update_route

__all__ = [
    "assign_customer",
    "bulk_assign",
    "unassign_customer",
    "create_route",
    "set_route_status",
    "update_route",
]
