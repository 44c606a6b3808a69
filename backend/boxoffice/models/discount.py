from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Numeric, String

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class DiscountCode(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "discount_codes"

    code = Column(String(50), unique=True, nullable=False, index=True)  # stored uppercase
    discount_percentage = Column(Numeric(5, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    max_uses_per_user = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "discount_percentage > 0 AND discount_percentage <= 100", name="check_discount_percentage_range"
        ),
    )

    def __repr__(self) -> str:
        return f"<DiscountCode(code={self.code}, pct={self.discount_percentage})>"
