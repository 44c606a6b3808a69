"""
Payment records written by the gateway adapters. The core only reads them:
a checkout completes against a payment in status `completed`.
"""

from sqlalchemy import Column, DateTime, ForeignKey, JSON, Numeric, String

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Payment(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "payments"

    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    payment_method = Column(String(30), nullable=True)
    reference_number = Column(String(64), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending")  # pending, completed, failed, refunded
    completed_at = Column(DateTime(timezone=True), nullable=True)
    payment_metadata = Column("metadata", JSON, nullable=True)

    @property
    def paid_amount(self):
        return self.total_amount if self.total_amount is not None else self.amount

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.amount}, status={self.status})>"
