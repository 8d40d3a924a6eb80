"""
Route (zone) owning a closed integer interval [range_min, range_max].

Active routes must not overlap; that rule spans rows so it is enforced by
services.allocation.overlap, not by a constraint here.
"""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from routeslots.core.constants import (
    CK_ROUTE_RANGE_NON_NEGATIVE,
    CK_ROUTE_RANGE_ORDER,
    STATUS_ACTIVE,
    UQ_ROUTE_CITY_NAME,
)
from routeslots.db.base import Base


class Route(Base):
    __tablename__ = "routes"
    __table_args__ = (
        UniqueConstraint("city_id", "name", name=UQ_ROUTE_CITY_NAME),
        CheckConstraint("range_min >= 0", name=CK_ROUTE_RANGE_NON_NEGATIVE),
        CheckConstraint("range_max >= range_min", name=CK_ROUTE_RANGE_ORDER),
        Index("ix_routes_status_range", "status", "range_min", "range_max"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    range_min = Column(Integer, nullable=False)
    range_max = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_ACTIVE, server_default=STATUS_ACTIVE, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def capacity(self) -> int:
        return self.range_max - self.range_min + 1

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE
