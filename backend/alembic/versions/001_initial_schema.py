"""Initial schema: catalog, bookings, payments with indexes and constraints.

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


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Catalog tables (written by the catalog service, read here)
    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("price_per_hour", sa.Numeric(10, 2), nullable=False),
        sa.Column("opening_start", sa.String(5), nullable=False, server_default="06:00"),
        sa.Column("opening_end", sa.String(5), nullable=False, server_default="23:00"),
        *_timestamps(),
        sa.CheckConstraint("price_per_hour >= 0", name="check_venue_price_non_negative"),
    )
    op.create_index("ix_venues_id", "venues", ["id"])
    op.create_index("ix_venues_owner_id", "venues", ["owner_id"])

    op.create_table(
        "coaches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("hourly_rate >= 0", name="check_coach_rate_non_negative"),
    )
    op.create_index("ix_coaches_id", "coaches", ["id"])
    op.create_index("ix_coaches_user_id", "coaches", ["user_id"])

    op.create_table(
        "equipment",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("rental_price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("rental_price >= 0", name="check_equipment_price_non_negative"),
    )
    op.create_index("ix_equipment_id", "equipment", ["id"])
    op.create_index("ix_equipment_venue_id", "equipment", ["venue_id"])

    op.create_table(
        "tariffs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("day", sa.String(10), nullable=False),
        sa.Column("time_start", sa.String(5), nullable=False),
        sa.Column("time_end", sa.String(5), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="check_tariff_price_non_negative"),
        sa.CheckConstraint("time_start < time_end", name="check_tariff_window"),
    )
    op.create_index("ix_tariffs_id", "tariffs", ["id"])
    op.create_index("ix_tariffs_venue_day", "tariffs", ["venue_id", "day"])

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("coach_id", sa.Integer(), sa.ForeignKey("coaches.id"), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'paid'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        *_timestamps(),
        sa.CheckConstraint("start_time < end_time", name="check_booking_interval"),
        sa.CheckConstraint("total_amount > 0", name="check_booking_amount_positive"),
        sa.CheckConstraint("payment_status IN ('paid', 'refunded')", name="check_booking_payment_status"),
        sa.CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed')", name="check_booking_status"
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    # Every overlap check filters by resource, then by start_time
    op.create_index("ix_bookings_venue_start", "bookings", ["venue_id", "start_time"])
    op.create_index("ix_bookings_coach_start", "bookings", ["coach_id", "start_time"])

    op.create_table(
        "booking_equipment",
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("equipment_id", sa.Integer(), sa.ForeignKey("equipment.id"), primary_key=True),
    )
    op.create_index("ix_booking_equipment_equipment_id", "booking_equipment", ["equipment_id"])

    # Payments (pending reservations and the audit trail)
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payer_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default=sa.text("'card'")),
        sa.Column("gateway_reference", sa.String(255), nullable=True),
        sa.Column("staged_details", sa.JSON(), nullable=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="check_payment_amount_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'success', 'failed', 'refunded')", name="check_payment_status"
        ),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_payer_id", "payments", ["payer_id"])
    op.create_index("ix_payments_gateway_reference", "payments", ["gateway_reference"])
    # Expiry sweep: WHERE status = 'pending' AND created_at < :cutoff
    op.create_index("ix_payments_status_created", "payments", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("booking_equipment")
    op.drop_table("bookings")
    op.drop_table("tariffs")
    op.drop_table("equipment")
    op.drop_table("coaches")
    op.drop_table("venues")
