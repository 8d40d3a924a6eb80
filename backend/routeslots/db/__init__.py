from routeslots.db.base import Base
from routeslots.db.session import get_db, engine, SessionLocal, transaction_scope
from routeslots.db.tables import ALL_TABLE_NAMES, ALLOCATION_TABLE_NAMES

__all__ = [
    "get_db",
    "engine",
    "SessionLocal",
    "transaction_scope",
    "Base",
    "ALL_TABLE_NAMES",
    "ALLOCATION_TABLE_NAMES",
]
