"""Initial schema: users, trips, trip permissions, moments, media items

Revision ID: tripbank_001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "tripbank_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.Column("storage_used_bytes", sa.BigInteger, server_default="0"),
        sa.Column("subscription_tier", sa.String(20), server_default="free"),
        sa.Column("subscription_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revenuecat_user_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- trips ---
    op.create_table(
        "trips",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(255), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("cover_image_name", sa.String(255), nullable=True),
        sa.Column("cover_image_storage_id", sa.String(64), nullable=True),
        sa.Column("preview_image_storage_id", sa.String(64), nullable=True),
        sa.Column("share_slug", sa.String(64), nullable=True),
        sa.Column("share_code", sa.String(16), nullable=True),
        sa.Column("share_link_enabled", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_trips_owner_id", "trips", ["owner_id"])
    op.create_index("ix_trips_share_slug", "trips", ["share_slug"], unique=True)
    op.create_index("ix_trips_share_code", "trips", ["share_code"], unique=True)

    # --- trip_permissions ---
    op.create_table(
        "trip_permissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("trip_id", sa.String(36), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(255), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("granted_via", sa.String(20), server_default="share_link"),
        sa.Column("invited_by", sa.String(255), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("trip_id", "user_id", name="uq_trip_permission"),
    )
    op.create_index("ix_trip_permissions_trip_id", "trip_permissions", ["trip_id"])
    op.create_index("ix_trip_permissions_user_id", "trip_permissions", ["user_id"])

    # --- moments ---
    op.create_table(
        "moments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("trip_id", sa.String(36), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("media_item_ids", sa.JSON, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("place_name", sa.String(255), nullable=True),
        sa.Column("event_name", sa.String(255), nullable=True),
        sa.Column("voice_note_url", sa.String(1024), nullable=True),
        sa.Column("grid_column", sa.Integer, server_default="0"),
        sa.Column("grid_row", sa.Float, server_default="0"),
        sa.Column("grid_width", sa.Integer, server_default="1"),
        sa.Column("grid_height", sa.Float, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_moments_trip_id", "moments", ["trip_id"])
    op.create_index("ix_moments_user_id", "moments", ["user_id"])

    # --- media_items ---
    op.create_table(
        "media_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("trip_id", sa.String(36), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("storage_id", sa.String(64), nullable=True),
        sa.Column("thumbnail_storage_id", sa.String(64), nullable=True),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.Column("video_url", sa.String(1024), nullable=True),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("capture_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("file_size", sa.BigInteger, nullable=True),
        sa.Column("thumbnail_size", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_media_items_trip_id", "media_items", ["trip_id"])
    op.create_index("ix_media_items_user_id", "media_items", ["user_id"])


def downgrade() -> None:
    op.drop_table("media_items")
    op.drop_table("moments")
    op.drop_table("trip_permissions")
    op.drop_table("trips")
    op.drop_table("users")
