"""Stored files: uploader, measured size and single-use upload slot per storage id

Revision ID: tripbank_002
Revises: tripbank_001
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "tripbank_002"
down_revision = "tripbank_001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- stored_files ---
    op.create_table(
        "stored_files",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("upload_slot", sa.String(32), nullable=False),
        sa.Column("size", sa.BigInteger, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("upload_slot", name="uq_stored_files_upload_slot"),
    )
    op.create_index("ix_stored_files_user_id", "stored_files", ["user_id"])


def downgrade() -> None:
    op.drop_table("stored_files")
