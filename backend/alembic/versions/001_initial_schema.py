"""Initial schema: trips and bookings with constraints and sweep index.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Trips table
    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("departs_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("returns_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("available_seats", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("refundable_until_days_before", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cancellation_fee_percent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("capacity > 0", name="check_trip_capacity_positive"),
        sa.CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        sa.CheckConstraint("available_seats <= capacity", name="check_available_lte_capacity"),
        sa.CheckConstraint("price > 0", name="check_trip_price_positive"),
        sa.CheckConstraint("refundable_until_days_before >= 0", name="check_refund_cutoff_non_negative"),
        sa.CheckConstraint("cancellation_fee_percent BETWEEN 0 AND 100", name="check_cancellation_fee_range"),
        sa.CheckConstraint("status IN ('draft', 'published')", name="check_trip_status"),
    )
    op.create_index("ix_trips_id", "trips", ["id"])
    # Listing query: WHERE status = 'published' ORDER BY departs_at
    op.create_index("ix_trips_status_departs_at", "trips", ["status", "departs_at"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("seat_count", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, server_default=sa.text("'pending_payment'")),
        sa.Column("price_charged", sa.Numeric(10, 2), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # NULLs never collide, so only applied outcomes are constrained
        sa.UniqueConstraint("idempotency_key", name="uq_bookings_idempotency_key"),
        sa.CheckConstraint("seat_count > 0", name="check_booking_seat_count_positive"),
        sa.CheckConstraint(
            "state IN ('pending_payment', 'confirmed', 'cancelled', 'expired')",
            name="check_booking_state",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_trip_id", "bookings", ["trip_id"])
    op.create_index("ix_bookings_requester_id", "bookings", ["requester_id"])
    # Expiry sweep: WHERE state = 'pending_payment' AND expires_at < now()
    op.create_index("ix_bookings_state_expires_at", "bookings", ["state", "expires_at"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("trips")
