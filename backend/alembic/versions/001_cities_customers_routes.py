"""Cities, customers and routes (zones with integer slot ranges)

Revision ID: 001
Revises:
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "cities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("name", name="uq_cities_name"),
    )
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("city_id", sa.Integer(), sa.ForeignKey("cities.id"), nullable=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_customers_city_id", "customers", ["city_id"], unique=False)
    op.create_table(
        "routes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("city_id", sa.Integer(), sa.ForeignKey("cities.id"), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("range_min", sa.Integer(), nullable=False),
        sa.Column("range_max", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("city_id", "name", name="uq_routes_city_name"),
        sa.CheckConstraint("range_min >= 0", name="ck_routes_range_non_negative"),
        sa.CheckConstraint("range_max >= range_min", name="ck_routes_range_order"),
    )
    op.create_index("ix_routes_city_id", "routes", ["city_id"], unique=False)
    op.create_index("ix_routes_status", "routes", ["status"], unique=False)
    # Overlap lookups scan active ranges
    op.create_index("ix_routes_status_range", "routes", ["status", "range_min", "range_max"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_routes_status_range", table_name="routes")
    op.drop_index("ix_routes_status", table_name="routes")
    op.drop_index("ix_routes_city_id", table_name="routes")
    op.drop_table("routes")
    op.drop_index("ix_customers_city_id", table_name="customers")
    op.drop_table("customers")
    op.drop_table("cities")
