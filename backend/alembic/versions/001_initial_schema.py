"""Initial schema: users, events, seats, carts, checkouts, orders, tickets, bookings.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _deleted_at() -> sa.Column:
    return sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="customer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("pending_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_payouts", sa.Numeric(12, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "commission_percentage >= 0 AND commission_percentage <= 100",
            name="check_commission_percentage_range",
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "venues",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        *_timestamps(),
        _deleted_at(),
    )

    op.create_table(
        "events",
        _id(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("organizer_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.id"), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("sold_tickets", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("allow_deposit", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deposit_type", sa.String(20), nullable=False, server_default="percentage"),
        sa.Column("deposit_value", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("min_deposit_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("deposit_due_by", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        _deleted_at(),
        sa.CheckConstraint("sold_tickets >= 0", name="check_sold_tickets_non_negative"),
        sa.CheckConstraint("sold_tickets <= capacity", name="check_sold_lte_capacity"),
        sa.CheckConstraint("deposit_type IN ('percentage', 'fixed')", name="check_deposit_type"),
    )
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    op.create_index("ix_events_start_date", "events", ["start_date"])

    op.create_table(
        "event_pricing_tiers",
        _id(),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_tickets", sa.Integer(), nullable=False),
        sa.Column("available_tickets", sa.Integer(), nullable=False),
        *_timestamps(),
        _deleted_at(),
        sa.CheckConstraint("available_tickets >= 0", name="check_tier_available_non_negative"),
        sa.CheckConstraint("available_tickets <= total_tickets", name="check_tier_available_lte_total"),
    )
    op.create_index("ix_event_pricing_tiers_event_id", "event_pricing_tiers", ["event_id"])
    op.create_index("ix_pricing_tiers_event_name", "event_pricing_tiers", ["event_id", "name"])

    op.create_table(
        "seats",
        _id(),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("seat_section", sa.String(50), nullable=False, server_default="general"),
        sa.Column("seat_row", sa.String(10), nullable=False),
        sa.Column("seat_number", sa.String(20), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("reservation_id", sa.String(36), nullable=True),
        sa.Column("payment_id", sa.String(64), nullable=True),
        *_timestamps(),
        _deleted_at(),
        sa.UniqueConstraint("event_id", "seat_section", "seat_row", "seat_number", name="uq_event_seat"),
        sa.CheckConstraint("status IN ('available', 'reserved', 'sold', 'blocked')", name="check_seat_status"),
    )
    op.create_index("ix_seats_reservation_id", "seats", ["reservation_id"])
    # Holds select by (event, status) and flip rows in one UPDATE
    op.create_index("ix_seats_event_status", "seats", ["event_id", "status"])

    op.create_table(
        "seat_reservations",
        _id(),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("owner_ref", sa.String(80), nullable=False),
        sa.Column("seat_ids", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="held"),
        sa.Column("payment_id", sa.String(64), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('held', 'confirmed', 'released', 'expired')", name="check_reservation_status"
        ),
    )
    op.create_index("ix_seat_reservations_event_id", "seat_reservations", ["event_id"])
    op.create_index("ix_seat_reservations_owner_ref", "seat_reservations", ["owner_ref"])
    op.create_index("ix_seat_reservations_status_expires", "seat_reservations", ["status", "expires_at"])

    op.create_table(
        "shopping_carts",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("discount_code", sa.String(50), nullable=True),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("order_id", sa.String(36), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active', 'completed', 'expired')", name="check_cart_status"),
    )
    op.create_index("ix_shopping_carts_user_id", "shopping_carts", ["user_id"])
    # At most one active cart per user; concurrent first adds race on this
    op.create_index(
        "uq_active_cart_per_user",
        "shopping_carts",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active' AND user_id IS NOT NULL"),
        sqlite_where=sa.text("status = 'active' AND user_id IS NOT NULL"),
    )
    op.create_index(
        "ix_shopping_carts_guest_status_expires", "shopping_carts", ["is_guest", "status", "expires_at"]
    )

    op.create_table(
        "shopping_cart_items",
        _id(),
        sa.Column("cart_id", sa.String(36), sa.ForeignKey("shopping_carts.id"), nullable=False),
        sa.Column("item_type", sa.String(20), nullable=False, server_default="event"),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("item_ref_id", sa.String(255), nullable=True),
        sa.Column("item_title", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("seat_numbers", sa.JSON(), nullable=True),
        sa.Column("ticket_type", sa.String(50), nullable=False, server_default="general"),
        sa.Column("control", sa.JSON(), nullable=True),
        sa.Column("external_details", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("order_id", sa.String(36), nullable=True),
        sa.Column("checked_out_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 1", name="check_cart_item_quantity_positive"),
        sa.CheckConstraint("item_type IN ('event', 'flight', 'bus', 'hotel')", name="check_cart_item_type"),
    )
    op.create_index("ix_shopping_cart_items_cart_id", "shopping_cart_items", ["cart_id"])

    op.create_table(
        "checkouts",
        _id(),
        sa.Column("cart_id", sa.String(36), sa.ForeignKey("shopping_carts.id"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("guest_first_name", sa.String(100), nullable=True),
        sa.Column("guest_last_name", sa.String(100), nullable=True),
        sa.Column("guest_phone", sa.String(32), nullable=True),
        sa.Column("confirmation_code", sa.String(12), nullable=True),
        sa.Column("payment_method", sa.String(30), nullable=False, server_default="stripe"),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("billing_info", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("order_id", sa.String(36), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled', 'expired')", name="check_checkout_status"
        ),
    )
    op.create_index("ix_checkouts_cart_id", "checkouts", ["cart_id"])
    op.create_index("ix_checkouts_user_id", "checkouts", ["user_id"])
    op.create_index("ix_checkouts_status_expires", "checkouts", ["status", "expires_at"])

    op.create_table(
        "orders",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("guest_first_name", sa.String(100), nullable=True),
        sa.Column("guest_last_name", sa.String(100), nullable=True),
        sa.Column("guest_phone", sa.String(32), nullable=True),
        sa.Column("confirmation_code", sa.String(12), nullable=True),
        sa.Column("checkout_id", sa.String(36), sa.ForeignKey("checkouts.id"), nullable=False),
        sa.Column("payment_id", sa.String(64), nullable=True),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("balance_due", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("billing_info", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        # One order per checkout
        sa.UniqueConstraint("checkout_id", name="uq_orders_checkout_id"),
        sa.CheckConstraint(
            "status IN ('confirmed', 'partially_paid', 'cancelled', 'archived')", name="check_order_status"
        ),
        sa.CheckConstraint("balance_due >= 0", name="check_order_balance_non_negative"),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index("ix_orders_guest_email", "orders", ["guest_email"])
    op.create_index("ix_orders_guest_lookup", "orders", ["guest_email", "confirmation_code"])

    op.create_table(
        "order_payments",
        _id(),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("payment_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default="initial"),
        *_timestamps(),
        # A payment is applied to at most one order, once
        sa.UniqueConstraint("payment_id", name="uq_order_payments_payment_id"),
    )
    op.create_index("ix_order_payments_order_id", "order_payments", ["order_id"])

    op.create_table(
        "tickets",
        _id(),
        sa.Column("ticket_number", sa.String(40), nullable=False),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("item_type", sa.String(20), nullable=False, server_default="event"),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("item_ref_id", sa.String(255), nullable=True),
        sa.Column("item_title", sa.String(255), nullable=True),
        sa.Column("ticket_type", sa.String(50), nullable=True),
        sa.Column("seat_number", sa.String(20), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(20), nullable=False, server_default="reserved"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("digital_format", sa.String(20), nullable=True),
        sa.Column("qr_code_data", sa.Text(), nullable=True),
        sa.Column("nfc_data", sa.Text(), nullable=True),
        sa.Column("rfid_data", sa.Text(), nullable=True),
        sa.Column("barcode_data", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('reserved', 'confirmed', 'used', 'cancelled', 'refunded', 'refund_requested')",
            name="check_ticket_status",
        ),
    )
    op.create_index("ix_tickets_ticket_number", "tickets", ["ticket_number"], unique=True)
    op.create_index("ix_tickets_order_id", "tickets", ["order_id"])
    op.create_index("ix_tickets_user_id", "tickets", ["user_id"])
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])

    op.create_table(
        "buses",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=True),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("available_seats", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("available_seats >= 0", name="check_bus_available_non_negative"),
    )

    op.create_table(
        "bus_bookings",
        _id(),
        sa.Column("bus_id", sa.String(255), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("seats_count", sa.Integer(), nullable=False),
        sa.Column("passenger_details", sa.JSON(), nullable=True),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="reserved"),
        *_timestamps(),
    )
    op.create_index("ix_bus_bookings_bus_id", "bus_bookings", ["bus_id"])
    op.create_index("ix_bus_bookings_order_id", "bus_bookings", ["order_id"])

    op.create_table(
        "flight_bookings",
        _id(),
        sa.Column("flight_offer_id", sa.String(255), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("passengers_count", sa.Integer(), nullable=False),
        sa.Column("passenger_details", sa.JSON(), nullable=True),
        sa.Column("contact_info", sa.JSON(), nullable=True),
        sa.Column("flight_details", sa.JSON(), nullable=True),
        sa.Column("airline", sa.String(50), nullable=True),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="reserved"),
        *_timestamps(),
    )
    op.create_index("ix_flight_bookings_flight_offer_id", "flight_bookings", ["flight_offer_id"])
    op.create_index("ix_flight_bookings_order_id", "flight_bookings", ["order_id"])

    op.create_table(
        "hotel_bookings",
        _id(),
        sa.Column("hotel_code", sa.String(255), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("check_in_date", sa.Date(), nullable=True),
        sa.Column("check_out_date", sa.Date(), nullable=True),
        sa.Column("rooms_count", sa.Integer(), nullable=False),
        sa.Column("guest_details", sa.JSON(), nullable=True),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="reserved"),
        *_timestamps(),
    )
    op.create_index("ix_hotel_bookings_hotel_code", "hotel_bookings", ["hotel_code"])
    op.create_index("ix_hotel_bookings_order_id", "hotel_bookings", ["order_id"])

    op.create_table(
        "payments",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("payment_method", sa.String(30), nullable=True),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])

    op.create_table(
        "discount_codes",
        _id(),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_uses_per_user", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "discount_percentage > 0 AND discount_percentage <= 100", name="check_discount_percentage_range"
        ),
    )
    op.create_index("ix_discount_codes_code", "discount_codes", ["code"], unique=True)

    op.create_table(
        "audit_logs",
        _id(),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("resource", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "discount_codes",
        "payments",
        "hotel_bookings",
        "flight_bookings",
        "bus_bookings",
        "buses",
        "tickets",
        "order_payments",
        "orders",
        "checkouts",
        "shopping_cart_items",
        "shopping_carts",
        "seat_reservations",
        "seats",
        "event_pricing_tiers",
        "events",
        "venues",
        "users",
    ):
        op.drop_table(table)
