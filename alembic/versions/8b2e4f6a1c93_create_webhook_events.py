"""Create webhook events table

Revision ID: 8b2e4f6a1c93
Revises: 3f1c2a9d7b40
Create Date: 2026-10-19 14:03:52.207115

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "8b2e4f6a1c93"
down_revision = "3f1c2a9d7b40"
branch_labels = None
depends_on = None

SCHEMA = "beds24"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=True),
        sa.Column("property_id", sa.String(64), nullable=True),
        sa.Column("booking_id", sa.String(64), nullable=True),
        sa.Column("webhook_type", sa.String(32), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("processed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        schema=SCHEMA,
    )
    for column in ("hotel_id", "created_at"):
        op.create_index(
            f"ix_beds24_webhook_events_{column}", "webhook_events", [column], schema=SCHEMA
        )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("webhook_events", schema=SCHEMA)
