"""Create Beds24 sync tables

Revision ID: 3f1c2a9d7b40
Revises:
Create Date: 2026-10-19 09:12:31.418204

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b40"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "beds24"


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "connections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("property_id", sa.String(32), nullable=False),
        sa.Column("scopes", postgresql.JSONB(), nullable=False),
        sa.Column("read_secret_name", sa.String(255), nullable=False),
        sa.Column("write_secret_name", sa.String(255), nullable=True),
        sa.Column("access_token_cache", sa.Text(), nullable=True),
        sa.Column("access_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("write_access_token_cache", sa.Text(), nullable=True),
        sa.Column("write_access_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("hotel_id", "property_id", name="uq_connections_hotel_property"),
        schema=SCHEMA,
    )
    op.create_index("ix_beds24_connections_org_id", "connections", ["org_id"], schema=SCHEMA)
    op.create_index("ix_beds24_connections_hotel_id", "connections", ["hotel_id"], schema=SCHEMA)

    op.create_table(
        "sync_state",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("property_id", sa.String(32), nullable=False),
        sa.Column(
            "bootstrap_completed", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.Column("bootstrap_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bootstrap_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_bookings_modified_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_bookings_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_calendar_start", sa.Date(), nullable=True),
        sa.Column("last_calendar_end", sa.Date(), nullable=True),
        sa.Column("last_calendar_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_enabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("settings", postgresql.JSONB(), nullable=False),
        sa.Column("errors_cleared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_lock_owner", sa.String(36), nullable=True),
        sa.Column("consecutive_failures", sa.Integer(), server_default="0", nullable=False),
        sa.Column("backoff_until", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_beds24_sync_state_hotel_id", "sync_state", ["hotel_id"], unique=True, schema=SCHEMA
    )

    op.create_table(
        "id_map",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("entity", sa.String(16), nullable=False),
        sa.Column("remote_id", sa.String(64), nullable=False),
        sa.Column("local_id", sa.String(36), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("hotel_id", "entity", "remote_id", name="uq_id_map_remote"),
        sa.UniqueConstraint("hotel_id", "entity", "local_id", name="uq_id_map_local"),
        schema=SCHEMA,
    )
    op.create_index("ix_beds24_id_map_hotel_id", "id_map", ["hotel_id"], schema=SCHEMA)

    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("operation", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("hotel_id", sa.String(64), nullable=True),
        sa.Column("request_cost", sa.Float(), nullable=True),
        sa.Column("limit_remaining", sa.Float(), nullable=True),
        sa.Column("limit_resets_in", sa.Integer(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("records_processed", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_category", sa.String(32), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False),
        sa.Column("trace_id", sa.String(64), nullable=True),
        *_timestamps(updated=False),
        schema=SCHEMA,
    )
    for column in ("operation", "hotel_id", "trace_id", "created_at"):
        op.create_index(f"ix_beds24_audit_log_{column}", "audit_log", [column], schema=SCHEMA)

    op.create_table(
        "rate_push_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("room_type_id", sa.String(36), nullable=False),
        sa.Column("remote_room_id", sa.String(64), nullable=False),
        sa.Column("date_range_start", sa.Date(), nullable=False),
        sa.Column("date_range_end", sa.Date(), nullable=False),
        sa.Column("updates", postgresql.JSONB(), nullable=False),
        sa.Column("batches_total", sa.Integer(), nullable=False),
        sa.Column("batches_successful", sa.Integer(), nullable=False),
        sa.Column("lines_total", sa.Integer(), nullable=False),
        sa.Column("lines_successful", sa.Integer(), nullable=False),
        sa.Column("batch_results", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("pushed_by", sa.String(64), nullable=True),
        sa.Column("trace_id", sa.String(64), nullable=True),
        *_timestamps(updated=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_beds24_rate_push_history_hotel_id", "rate_push_history", ["hotel_id"], schema=SCHEMA
    )

    op.create_table(
        "room_types",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_beds24_room_types_hotel_id", "room_types", ["hotel_id"], schema=SCHEMA)

    op.create_table(
        "guests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("country", sa.String(8), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_beds24_guests_hotel_id", "guests", ["hotel_id"], schema=SCHEMA)

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column(
            "room_type_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.room_types.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "guest_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.guests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("remote_room_id", sa.String(64), nullable=True),
        sa.Column("arrival", sa.Date(), nullable=False),
        sa.Column("departure", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("adults", sa.Integer(), nullable=False),
        sa.Column("children", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("channel", sa.String(64), nullable=True),
        sa.Column("remote_modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_beds24_bookings_hotel_id", "bookings", ["hotel_id"], schema=SCHEMA)

    op.create_table(
        "calendar_days",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False),
        sa.Column(
            "room_type_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.room_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("available", sa.Integer(), nullable=True),
        sa.Column("rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("stop_sell", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("closed_arrival", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("closed_departure", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("min_stay", sa.Integer(), nullable=True),
        sa.Column("max_stay", sa.Integer(), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.UniqueConstraint("hotel_id", "room_type_id", "day", name="uq_calendar_days_room_day"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_beds24_calendar_days_hotel_id", "calendar_days", ["hotel_id"], schema=SCHEMA
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "calendar_days",
        "bookings",
        "guests",
        "room_types",
        "rate_push_history",
        "audit_log",
        "id_map",
        "sync_state",
        "connections",
    ):
        op.drop_table(table, schema=SCHEMA)
