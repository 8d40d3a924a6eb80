#!/usr/bin/env python3
"""
Check route/slot invariants against the configured database. Exit code 1 on any violation.

  - active route ranges do not overlap
  - every active assignment's slot is inside its route's range
  - active slots are distinct per route
  - a customer has at most one active assignment

Run from backend dir:
  poetry run python scripts/audit_invariants.py
"""
import sys
from pathlib import Path

# backend/scripts/ -> backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import text

from routeslots.db.session import engine

CHECKS = (
    (
        "overlapping active routes",
        """
        SELECT a.id, b.id FROM routes a
        JOIN routes b ON a.id < b.id
        WHERE a.status = 'active' AND b.status = 'active'
          AND a.range_min <= b.range_max AND a.range_max >= b.range_min
        """,
    ),
    (
        "active slots outside their route range",
        """
        SELECT ra.id, ra.route_id, ra.slot FROM route_assignments ra
        JOIN routes r ON r.id = ra.route_id
        WHERE ra.status = 'active' AND (ra.slot < r.range_min OR ra.slot > r.range_max)
        """,
    ),
    (
        "duplicate active slots on a route",
        """
        SELECT route_id, slot, COUNT(*) FROM route_assignments
        WHERE status = 'active'
        GROUP BY route_id, slot HAVING COUNT(*) > 1
        """,
    ),
    (
        "customers with more than one active assignment",
        """
        SELECT customer_id, COUNT(*) FROM route_assignments
        WHERE status = 'active'
        GROUP BY customer_id HAVING COUNT(*) > 1
        """,
    ),
)


def main():
    failures = 0
    with engine.connect() as conn:
        for label, sql in CHECKS:
            rows = conn.execute(text(sql)).fetchall()
            if rows:
                failures += 1
                print(f"FAIL {label}: {len(rows)}")
                for row in rows[:20]:
                    print("     ", tuple(row))
            else:
                print(f"OK   {label}")
    if failures:
        print(f"\n{failures} check(s) failed.")
        return 1
    print("\nAll invariants hold.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
