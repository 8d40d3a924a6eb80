#!/usr/bin/env python3
"""
Rebuild the route/slot schema: drop this project's tables (and alembic_version),
run migrations to head, then run the invariant audit on the empty store.
Other schemas and tables in the database are left alone.

Run from backend dir:
  poetry run python scripts/rebuild_schema.py
  poetry run python scripts/rebuild_schema.py --yes   # skip the confirmation prompt
"""
import argparse
import subprocess
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from sqlalchemy import inspect, text

from routeslots.db.session import engine
from routeslots.db.tables import ALL_TABLE_NAMES

sys.path.insert(0, str(Path(__file__).resolve().parent))
import audit_invariants  # noqa: E402

ALEMBIC_VERSION_TABLE = "alembic_version"


def drop_order() -> list[str]:
    """Children before parents: ALL_TABLE_NAMES lists parents first."""
    return list(reversed(ALL_TABLE_NAMES)) + [ALEMBIC_VERSION_TABLE]


def drop_tables() -> list[str]:
    existing = set(inspect(engine).get_table_names())
    cascade = " CASCADE" if engine.dialect.name == "postgresql" else ""
    dropped = []
    with engine.begin() as conn:
        for name in drop_order():
            if name in existing:
                conn.execute(text(f"DROP TABLE {name}{cascade}"))
                dropped.append(name)
    return dropped


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    args = parser.parse_args(argv)

    if not args.yes:
        answer = input(f"Drop {', '.join(drop_order())} on {engine.url.render_as_string(hide_password=True)}? [y/N] ")
        if answer.strip().lower() != "y":
            print("Aborted.")
            return 1

    dropped = drop_tables()
    print(f"Dropped: {', '.join(dropped) or '(none existed)'}. Running migrations...")
    result = subprocess.run([sys.executable, "-m", "alembic", "upgrade", "head"], cwd=backend_dir)
    if result.returncode != 0:
        return result.returncode

    missing = sorted(set(ALL_TABLE_NAMES) - set(inspect(engine).get_table_names()))
    if missing:
        print(f"FAIL migrations did not create: {', '.join(missing)}")
        return 1
    print("Schema rebuilt. Auditing invariants...")
    return audit_invariants.main()


if __name__ == "__main__":
    sys.exit(main())
