"""Customer that can hold at most one active route assignment at a time."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from routeslots.core.constants import STATUS_ACTIVE
from routeslots.db.base import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=True, index=True)
    name = Column(String(256), nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_ACTIVE, server_default=STATUS_ACTIVE)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
