"""Packages, hotels and package hotel stays

Revision ID: pricing_001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = "pricing_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- hotels ---
    op.create_table(
        "hotels",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("city", sa.String(100)),
        sa.Column("base_price", sa.Numeric(10, 2)),
        sa.Column("currency", sa.String(3), server_default="SAR"),
        sa.Column("tbo_hotel_code", sa.String(50)),
        sa.Column("tbo_linked", sa.Boolean, server_default="false"),
        sa.Column("live_pricing", sa.Boolean, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_hotels_tbo_hotel_code", "hotels", ["tbo_hotel_code"])

    # --- packages ---
    op.create_table(
        "packages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("duration", sa.Integer, nullable=False, server_default="1"),
        sa.Column("price_adult", sa.Numeric(10, 2)),
        sa.Column("price_child", sa.Numeric(10, 2)),
        sa.Column("price_infant", sa.Numeric(10, 2)),
        sa.Column("price", sa.Numeric(10, 2)),
        sa.Column("currency", sa.String(3), server_default="SAR"),
        sa.Column("discount_type", sa.String(20), server_default="none"),
        sa.Column("discount_value", sa.Numeric(10, 2)),
        sa.Column("hotel_packages_json", JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- package_hotels ---
    op.create_table(
        "package_hotels",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("package_id", UUID(as_uuid=True), sa.ForeignKey("packages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("hotel_id", UUID(as_uuid=True), sa.ForeignKey("hotels.id"), nullable=False),
        sa.Column("check_in_day", sa.Integer, nullable=False, server_default="1"),
        sa.Column("check_out_day", sa.Integer, nullable=False, server_default="2"),
        sa.Column("room_type", sa.String(100), server_default="Standard Room"),
        sa.Column("rooms_needed", sa.Integer, server_default="1"),
        sa.Column("guests_per_room", sa.Integer, server_default="2"),
        sa.Column("price_per_night", sa.Numeric(10, 2)),
        sa.Column("taxes", sa.Numeric(10, 2)),
        sa.Column("service_fees", sa.Numeric(10, 2)),
        sa.Column("currency", sa.String(3), server_default="SAR"),
        sa.CheckConstraint("check_out_day >= check_in_day", name="ck_package_hotels_day_order"),
    )
    op.create_index("ix_package_hotels_package_id", "package_hotels", ["package_id"])


def downgrade() -> None:
    op.drop_table("package_hotels")
    op.drop_table("packages")
    op.drop_index("ix_hotels_tbo_hotel_code", table_name="hotels")
    op.drop_table("hotels")
