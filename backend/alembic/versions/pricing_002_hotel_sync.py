"""Hotel profile and TBO sync tracking columns

Revision ID: pricing_002
Revises: pricing_001
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "pricing_002"
down_revision = "pricing_001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- hotel profile, matched against TBO listings ---
    op.add_column("hotels", sa.Column("address", sa.String(500)))
    op.add_column("hotels", sa.Column("star_rating", sa.Integer))
    op.add_column("hotels", sa.Column("latitude", sa.Float))
    op.add_column("hotels", sa.Column("longitude", sa.Float))
    op.add_column("hotels", sa.Column("description", sa.Text))
    op.add_column("hotels", sa.Column("amenities", JSONB))

    # --- TBO link and sync state ---
    op.add_column("hotels", sa.Column("tbo_hotel_name", sa.String(300)))
    op.add_column("hotels", sa.Column("tbo_city_code", sa.String(50)))
    op.add_column("hotels", sa.Column("tbo_country_code", sa.String(2)))
    op.add_column("hotels", sa.Column("sync_status", sa.String(20), server_default="not_linked"))
    op.add_column("hotels", sa.Column("last_sync_at", sa.DateTime(timezone=True)))
    op.add_column("hotels", sa.Column("last_sync_error", sa.Text))
    op.add_column("hotels", sa.Column("synced_fields", JSONB))
    op.create_index("ix_hotels_sync_status", "hotels", ["sync_status"])


def downgrade() -> None:
    op.drop_index("ix_hotels_sync_status", table_name="hotels")
    for column in (
        "synced_fields", "last_sync_error", "last_sync_at", "sync_status",
        "tbo_country_code", "tbo_city_code", "tbo_hotel_name",
        "amenities", "description", "longitude", "latitude", "star_rating", "address",
    ):
        op.drop_column("hotels", column)
