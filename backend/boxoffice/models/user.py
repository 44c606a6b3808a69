"""
User model: customers, organizers (credited with earnings) and admins.

Key design decisions:
- Earnings columns live on the organizer row and are only ever changed by
  relative increments under a row lock (see earnings_service)
- Guest shoppers have no row until they convert their order into an account
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Numeric, String

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(32), nullable=True)
    role = Column(String(20), nullable=False, default="customer")
    is_active = Column(Boolean, default=True, nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)

    # Organizer earnings
    commission_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    total_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    pending_balance = Column(Numeric(12, 2), nullable=False, default=0)
    total_payouts = Column(Numeric(12, 2), nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "commission_percentage >= 0 AND commission_percentage <= 100",
            name="check_commission_percentage_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
