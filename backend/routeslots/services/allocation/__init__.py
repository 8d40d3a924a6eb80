from routeslots.services.allocation.bulk import bulk_allocate, normalize_customer_ids
from routeslots.services.allocation.overlap import ensure_no_overlap, find_conflict, occupied_blocks, suggest_for
from routeslots.services.allocation.single import SlotAssignment, allocate_slot, release_customer, renumber_inactive
from routeslots.services.allocation.slots import lock_route, lowest_free_slot, route_occupancy

__all__ = [
    "bulk_allocate",
    "normalize_customer_ids",
    "ensure_no_overlap",
    "find_conflict",
    "occupied_blocks",
    "suggest_for",
    "SlotAssignment",
    "allocate_slot",
    "release_customer",
    "renumber_inactive",
    "lock_route",
    "lowest_free_slot",
    "route_occupancy",
]
