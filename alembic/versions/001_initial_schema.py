"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates the booking core tables:
- Users and listings (columns the booking core reads)
- Bookings and their status history
- Escrows and escrow history
- Payouts
- Admin (audit logs, disputes)
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Statuses whose dates are unavailable to other bookings
OCCUPYING = "('pending', 'pending_payment', 'confirmed', 'paid', 'active', 'completed')"


def upgrade() -> None:
    """Create all database tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # ==================== USERS ====================
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("phone", sa.String(20)),
        sa.Column("role", sa.String(20), nullable=False, server_default="guest"),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== LISTINGS ====================
    op.create_table(
        "listings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("host_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("category", sa.String(20), server_default="stay"),
        sa.Column("status", sa.String(20), server_default="active", index=True),
        sa.Column("instant_book", sa.Boolean, server_default=sa.false()),
        sa.Column("cancellation_policy", sa.String(20), server_default="moderate"),
        sa.Column("min_nights", sa.Integer, server_default="1"),
        sa.Column("max_nights", sa.Integer),
        sa.Column("max_guests", sa.Integer, server_default="2"),
        sa.Column("base_price", sa.Integer, nullable=False),
        sa.Column("cleaning_fee", sa.Integer, server_default="0"),
        sa.Column("currency", sa.String(3), server_default="DZD"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_number", sa.String(20), unique=True, nullable=False, index=True),
        sa.Column("listing_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("listings.id"), nullable=False, index=True),
        sa.Column("guest_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("host_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("start_date", sa.Date, nullable=False, index=True),
        sa.Column("end_date", sa.Date, nullable=False, index=True),
        sa.Column("adults", sa.Integer, server_default="1"),
        sa.Column("children", sa.Integer, server_default="0"),
        sa.Column("infants", sa.Integer, server_default="0"),
        sa.Column("special_requests", sa.Text),
        # Pricing (minor units)
        sa.Column("base_price", sa.Integer, nullable=False),
        sa.Column("nights", sa.Integer, nullable=False),
        sa.Column("subtotal", sa.Integer, nullable=False),
        sa.Column("cleaning_fee", sa.Integer, server_default="0"),
        sa.Column("guest_service_fee", sa.Integer, server_default="0"),
        sa.Column("host_commission", sa.Integer, server_default="0"),
        sa.Column("taxes", sa.Integer, server_default="0"),
        sa.Column("total_amount", sa.Integer, nullable=False),
        sa.Column("host_payout", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("cancellation_policy", sa.String(20), server_default="moderate"),
        # Payment
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_provider", sa.String(20), nullable=False),
        sa.Column("payment_status", sa.String(20), server_default="pending"),
        sa.Column("payment_transaction_id", sa.String(255), index=True),
        sa.Column("paid_amount", sa.Integer, server_default="0"),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("refund_amount", sa.Integer, server_default="0"),
        sa.Column("refunded_at", sa.DateTime(timezone=True)),
        sa.Column("refund_breakdown", postgresql.JSONB),
        sa.Column("status", sa.String(20), server_default="pending", index=True),
        # Host response
        sa.Column("host_response_deadline", sa.DateTime(timezone=True), index=True),
        sa.Column("host_responded_at", sa.DateTime(timezone=True)),
        sa.Column("host_reminder_sent", sa.Boolean, server_default=sa.false()),
        sa.Column("auto_expired", sa.Boolean, server_default=sa.false()),
        # Stay
        sa.Column("checked_in_at", sa.DateTime(timezone=True)),
        sa.Column("check_in_confirmed_by", postgresql.UUID(as_uuid=True)),
        sa.Column("check_in_notes", sa.Text),
        sa.Column("checked_out_at", sa.DateTime(timezone=True)),
        sa.Column("check_out_confirmed_by", postgresql.UUID(as_uuid=True)),
        sa.Column("check_out_notes", sa.Text),
        sa.Column("damage_report", sa.Text),
        sa.Column("host_confirmed_completion", sa.Boolean, server_default=sa.false()),
        sa.Column("guest_confirmed_completion", sa.Boolean, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        # Cancellation
        sa.Column("cancelled_by", postgresql.UUID(as_uuid=True)),
        sa.Column("cancelled_by_role", sa.String(10)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancellation_reason", sa.String(30)),
        sa.Column("cancellation_note", sa.Text),
        sa.Column("cancellation_fee", sa.Integer, server_default="0"),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.CheckConstraint("end_date > start_date", name="bookings_dates_ordered"),
    )

    # Two occupying bookings of one listing may never share a night
    op.execute(
        f"""
        ALTER TABLE bookings ADD CONSTRAINT bookings_no_overlap
        EXCLUDE USING gist (
            listing_id WITH =,
            daterange(start_date, end_date, '[)') WITH &&
        ) WHERE (status IN {OCCUPYING})
        """
    )

    op.create_table(
        "booking_status_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("from_status", sa.String(20)),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True)),
        sa.Column("actor_role", sa.String(10)),
        sa.Column("note", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== ADMIN ====================
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("action", sa.String(100), nullable=False, index=True),
        sa.Column("resource_type", sa.String(50), nullable=False, index=True),
        sa.Column("resource_id", postgresql.UUID(as_uuid=True)),
        sa.Column("reason", sa.Text),
        sa.Column("old_values", postgresql.JSONB),
        sa.Column("new_values", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )

    op.create_table(
        "disputes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("raised_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("raised_by_role", sa.String(10), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("status", sa.String(20), server_default="open", index=True),
        sa.Column("resolution_notes", sa.Text),
        sa.Column("host_portion", sa.Integer),
        sa.Column("guest_portion", sa.Integer),
        sa.Column("resolved_by", postgresql.UUID(as_uuid=True)),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== ESCROW ====================
    op.create_table(
        "escrows",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), unique=True, nullable=False, index=True),
        sa.Column("payer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("payee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("host_amount", sa.Integer, nullable=False),
        sa.Column("platform_amount", sa.Integer, nullable=False),
        sa.Column("original_total", sa.Integer, nullable=False),
        sa.Column("provider_ref", sa.String(255)),
        sa.Column("status", sa.String(20), server_default="held", index=True),
        sa.Column("release_scheduled_at", sa.DateTime(timezone=True), index=True),
        sa.Column("released_at", sa.DateTime(timezone=True)),
        sa.Column("release_trigger", sa.String(30)),
        sa.Column("released_amount", sa.Integer, server_default="0"),
        sa.Column("refunded_amount", sa.Integer, server_default="0"),
        sa.Column("refunded_at", sa.DateTime(timezone=True)),
        sa.Column("refund_breakdown", postgresql.JSONB),
        sa.Column("dispute_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("disputes.id")),
        sa.Column("frozen_at", sa.DateTime(timezone=True)),
        sa.Column("freeze_reason", sa.Text),
        sa.Column("resolution_host_portion", sa.Integer),
        sa.Column("resolution_guest_portion", sa.Integer),
        sa.Column("resolved_by", postgresql.UUID(as_uuid=True)),
        sa.Column("resolution_notes", sa.Text),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.CheckConstraint(
            "host_amount + platform_amount = original_total", name="escrows_breakdown_balanced"
        ),
    )

    op.create_table(
        "escrow_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("escrow_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("escrows.id"), nullable=False, index=True),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("from_status", sa.String(20)),
        sa.Column("to_status", sa.String(20)),
        sa.Column("amount", sa.Integer),
        sa.Column("performed_by", postgresql.UUID(as_uuid=True)),
        sa.Column("note", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )

    # ==================== PAYOUTS ====================
    op.create_table(
        "payouts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("reference", sa.String(30), unique=True, nullable=False),
        sa.Column("host_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("fees", sa.Integer, server_default="0"),
        sa.Column("final_amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payout_method", sa.String(20), server_default="bank_transfer"),
        sa.Column("bank_name", sa.String(100), nullable=False),
        sa.Column("account_holder_name", sa.String(200), nullable=False),
        sa.Column("account_number_encrypted", sa.LargeBinary, nullable=False),
        sa.Column("rib_encrypted", sa.LargeBinary, nullable=False),
        sa.Column("rib_last4", sa.String(4), nullable=False),
        sa.Column("iban", sa.String(34)),
        sa.Column("swift_code", sa.String(11)),
        sa.Column("status", sa.String(20), server_default="pending", index=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("processed_by", postgresql.UUID(as_uuid=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("estimated_arrival", sa.DateTime(timezone=True)),
        sa.Column("transaction_id", sa.String(100)),
        sa.Column("rejection_reason", sa.Text),
        sa.Column("admin_notes", sa.Text),
        sa.Column("host_notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.CheckConstraint("amount > 0", name="payouts_amount_positive"),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("payouts")
    op.drop_table("escrow_history")
    op.drop_table("escrows")
    op.drop_table("disputes")
    op.drop_table("audit_logs")
    op.drop_table("booking_status_history")
    op.drop_table("bookings")
    op.drop_table("listings")
    op.drop_table("users")
