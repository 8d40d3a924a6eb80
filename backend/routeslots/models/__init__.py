from routeslots.models.city import City
from routeslots.models.customer import Customer
from routeslots.models.route import Route
from routeslots.models.route_assignment import RouteAssignment

__all__ = [
    "City",
    "Customer",
    "Route",
    "RouteAssignment",
]
