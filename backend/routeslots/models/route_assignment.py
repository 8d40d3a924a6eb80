"""
One customer on one route at one slot.

(route_id, slot) is unique across active and inactive rows, so an inactive row keeps
its slot reserved until it is deleted or renumbered. (route_id, customer_id) is unique
so history for a pair is a single row that flips between active and inactive.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from routeslots.core.constants import STATUS_ACTIVE, UQ_ASSIGNMENT_ROUTE_CUSTOMER, UQ_ASSIGNMENT_ROUTE_SLOT
from routeslots.db.base import Base


class RouteAssignment(Base):
    __tablename__ = "route_assignments"
    __table_args__ = (
        UniqueConstraint("route_id", "customer_id", name=UQ_ASSIGNMENT_ROUTE_CUSTOMER),
        UniqueConstraint("route_id", "slot", name=UQ_ASSIGNMENT_ROUTE_SLOT),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    slot = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_ACTIVE, server_default=STATUS_ACTIVE, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE
