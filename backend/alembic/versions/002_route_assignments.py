"""route_assignments: one customer per route row, unique slot per route (any status)

Revision ID: 002
Revises: 001
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "route_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("route_id", sa.Integer(), sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("slot", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("route_id", "customer_id", name="uq_route_assignments_route_customer"),
        sa.UniqueConstraint("route_id", "slot", name="uq_route_assignments_route_slot"),
    )
    op.create_index("ix_route_assignments_route_id", "route_assignments", ["route_id"], unique=False)
    op.create_index("ix_route_assignments_customer_id", "route_assignments", ["customer_id"], unique=False)
    op.create_index("ix_route_assignments_status", "route_assignments", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_route_assignments_status", table_name="route_assignments")
    op.drop_index("ix_route_assignments_customer_id", table_name="route_assignments")
    op.drop_index("ix_route_assignments_route_id", table_name="route_assignments")
    op.drop_table("route_assignments")
