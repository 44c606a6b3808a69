"""
Shopping carts and their items.

Key design decisions:
- Partial unique index: at most one `active` cart per user. Guest carts have
  no user and are addressed by cart id only
- Items are polymorphic through the `item_type` discriminator; event items
  carry `event_id`, flights/buses/hotels carry an external `item_ref_id`
- `control` holds internal bookkeeping (the seat reservation id) and
  `external_details` the opaque blob echoed from the caller; never mixed
- Items are soft-terminated at checkout (status=checked_out), never deleted
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    text,
)

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

ITEM_TYPES = ("event", "flight", "bus", "hotel")


class Cart(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "shopping_carts"

    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    is_guest = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="active")  # active, completed, expired
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_code = Column(String(50), nullable=True)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    order_id = Column(String(36), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_active_cart_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active' AND user_id IS NOT NULL"),
            sqlite_where=text("status = 'active' AND user_id IS NOT NULL"),
        ),
        CheckConstraint("status IN ('active', 'completed', 'expired')", name="check_cart_status"),
        Index("ix_shopping_carts_guest_status_expires", "is_guest", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Cart(id={self.id}, user={self.user_id}, guest={self.is_guest}, status={self.status})>"


class CartItem(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "shopping_cart_items"

    cart_id = Column(String(36), ForeignKey("shopping_carts.id"), nullable=False, index=True)
    item_type = Column(String(20), nullable=False, default="event")
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True)
    item_ref_id = Column(String(255), nullable=True)
    item_title = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    seat_numbers = Column(JSON, nullable=True)
    ticket_type = Column(String(50), nullable=False, default="general")
    control = Column(JSON, nullable=True)
    external_details = Column(JSON, nullable=True)
    status = Column(String(20), nullable=True)  # NULL/active, checked_out
    order_id = Column(String(36), nullable=True)
    checked_out_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_cart_item_quantity_positive"),
        CheckConstraint(
            "item_type IN ('event', 'flight', 'bus', 'hotel')", name="check_cart_item_type"
        ),
    )

    @property
    def reservation_id(self):
        return (self.control or {}).get("reservation_id")

    def __repr__(self) -> str:
        return f"<CartItem(id={self.id}, type={self.item_type}, qty={self.quantity})>"
