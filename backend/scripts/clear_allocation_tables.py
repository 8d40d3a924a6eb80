#!/usr/bin/env python3
"""
Clear allocation state. Cities and customers are kept.

  poetry run python scripts/clear_allocation_tables.py                # all routes and assignments
  poetry run python scripts/clear_allocation_tables.py --route-id 7   # only route 7's assignment rows (history included)

Run with the backend stopped to avoid lock waits.
"""
import argparse
import sys
from pathlib import Path

# backend/scripts/ -> backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import text

from routeslots.db.session import engine
from routeslots.db.tables import ALLOCATION_TABLE_NAMES


def _counts(conn) -> dict[str, int]:
    return {name: conn.execute(text(f"SELECT COUNT(*) FROM {name}")).scalar_one() for name in ALLOCATION_TABLE_NAMES}


def clear_route(conn, route_id: int) -> int:
    if conn.execute(text("SELECT 1 FROM routes WHERE id = :id"), {"id": route_id}).first() is None:
        raise SystemExit(f"Route {route_id} not found.")
    result = conn.execute(text("DELETE FROM route_assignments WHERE route_id = :id"), {"id": route_id})
    return result.rowcount


def clear_all(conn) -> None:
    if conn.dialect.name == "postgresql":
        conn.execute(text(f"TRUNCATE TABLE {', '.join(ALLOCATION_TABLE_NAMES)} RESTART IDENTITY CASCADE"))
    else:
        # ALLOCATION_TABLE_NAMES lists children first
        for name in ALLOCATION_TABLE_NAMES:
            conn.execute(text(f"DELETE FROM {name}"))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Clear routes and route assignments.")
    parser.add_argument("--route-id", type=int, help="Only delete this route's assignment rows")
    args = parser.parse_args(argv)

    with engine.begin() as conn:
        before = _counts(conn)
        print("Before: " + ", ".join(f"{k}={v}" for k, v in before.items()))
        if args.route_id is not None:
            removed = clear_route(conn, args.route_id)
            print(f"Removed {removed} assignment row(s) from route {args.route_id}.")
        else:
            clear_all(conn)
            print("Done. No routes or assignments remain.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
