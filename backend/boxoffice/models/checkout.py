"""
Checkout: a frozen snapshot of cart totals plus billing and payment intent.

pending -> completed | cancelled | expired. Transitions are conditional
UPDATEs on status='pending' so two concurrent completions cannot both win.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, JSON, Numeric, String

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Checkout(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "checkouts"

    cart_id = Column(String(36), ForeignKey("shopping_carts.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    is_guest = Column(Boolean, nullable=False, default=False)
    guest_email = Column(String(255), nullable=True)
    guest_first_name = Column(String(100), nullable=True)
    guest_last_name = Column(String(100), nullable=True)
    guest_phone = Column(String(32), nullable=True)
    confirmation_code = Column(String(12), nullable=True)

    payment_method = Column(String(30), nullable=False, default="stripe")
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    billing_info = Column(JSON, nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    order_id = Column(String(36), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled', 'expired')", name="check_checkout_status"
        ),
        Index("ix_checkouts_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Checkout(id={self.id}, cart={self.cart_id}, status={self.status})>"
