"""
Order: the durable outcome of a completed checkout.

Key design decisions:
- `checkout_id` is unique: one order per checkout, which makes completion
  idempotent at the database level
- balance_due = max(0, total_amount - amount_paid); status is `confirmed`
  when fully paid, `partially_paid` otherwise
- Guest orders keep the guest identity (email lowercased, confirmation code
  uppercased) until they are converted into an account
"""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, JSON, Numeric, String

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Order(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "orders"

    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    is_guest = Column(Boolean, nullable=False, default=False)
    guest_email = Column(String(255), nullable=True, index=True)
    guest_first_name = Column(String(100), nullable=True)
    guest_last_name = Column(String(100), nullable=True)
    guest_phone = Column(String(32), nullable=True)
    confirmation_code = Column(String(12), nullable=True)

    checkout_id = Column(String(36), ForeignKey("checkouts.id"), nullable=False, unique=True)
    payment_id = Column(String(64), nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    balance_due = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False)
    billing_info = Column(JSON, nullable=True)
    order_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'partially_paid', 'cancelled', 'archived')", name="check_order_status"
        ),
        CheckConstraint("balance_due >= 0", name="check_order_balance_non_negative"),
        Index("ix_orders_guest_lookup", "guest_email", "confirmation_code"),
    )

    @property
    def is_fully_paid(self) -> bool:
        return self.balance_due is not None and self.balance_due <= 0

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status={self.status}, balance_due={self.balance_due})>"


class OrderPayment(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Every payment applied to an order: the checkout payment and later top-ups."""

    __tablename__ = "order_payments"

    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    payment_id = Column(String(64), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    kind = Column(String(20), nullable=False, default="initial")  # initial, balance
