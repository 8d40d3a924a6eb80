"""
Centralized constants for routes and assignments (Encapsulate What Changes).

Status values and listing whitelists live here instead of being scattered across
models, services and routers. Env-driven knobs (retry budget, overlap scope, page
sizes) are in routeslots.config.
"""

# Lifecycle status shared by routes, assignments and customers
STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)

# Overlap scope that limits checks to one city (settings.overlap_scope; default is global)
OVERLAP_SCOPE_CITY = "city"

# Listing: columns a caller may order by; anything else falls back to the default
ROUTE_ORDER_WHITELIST = frozenset(
    {"id", "name", "city_id", "range_min", "range_max", "status", "created_at", "updated_at"}
)
ROUTE_DEFAULT_ORDER = ("created_at", "desc")

ASSIGNMENT_ORDER_WHITELIST = frozenset(
    {"id", "route_id", "customer_id", "slot", "status", "created_at", "updated_at"}
)
ASSIGNMENT_DEFAULT_ORDER = ("slot", "asc")

# Bulk assignment: hard cap on customer ids per request so one call stays one bounded transaction
BULK_ASSIGN_MAX_CUSTOMERS = 5000

# Store constraint names (models, migrations and the IntegrityError classifier must agree)
UQ_ROUTE_CITY_NAME = "uq_routes_city_name"
UQ_ASSIGNMENT_ROUTE_CUSTOMER = "uq_route_assignments_route_customer"
UQ_ASSIGNMENT_ROUTE_SLOT = "uq_route_assignments_route_slot"
CK_ROUTE_RANGE_ORDER = "ck_routes_range_order"
CK_ROUTE_RANGE_NON_NEGATIVE = "ck_routes_range_non_negative"
