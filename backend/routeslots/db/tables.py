"""
Single source of truth for database tables that exist after migrations (001-002).

Use these names when writing raw SQL (e.g. the invariant audit script).
"""
# All tables that exist in the DB. Must match models and migrations 001-002.
ALL_TABLE_NAMES = (
    "cities",
    "customers",
    "routes",
    "route_assignments",
)

# Tables cleared when resetting allocation state (TRUNCATE). Children first.
ALLOCATION_TABLE_NAMES = (
    "route_assignments",
    "routes",
)
