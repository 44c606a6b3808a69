"""
Seats and time-bounded seat holds.

Key design decisions:
- A hold moves a set of seats from `available` to `reserved` in one
  conditional UPDATE; if fewer rows match than requested the hold is refused
- `owner_ref` is `user:<id>` or `guest:<cart_id>` so guest carts can hold seats
- Reservations are never deleted: held -> confirmed | released | expired
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, JSON, Numeric, String, UniqueConstraint

from boxoffice.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Seat(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "seats"

    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    seat_section = Column(String(50), nullable=False, default="general")
    seat_row = Column(String(10), nullable=False)
    seat_number = Column(String(20), nullable=False)
    price = Column(Numeric(10, 2), nullable=True)
    status = Column(String(20), nullable=False, default="available")  # available, reserved, sold, blocked
    reservation_id = Column(String(36), nullable=True, index=True)
    payment_id = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("event_id", "seat_section", "seat_row", "seat_number", name="uq_event_seat"),
        CheckConstraint(
            "status IN ('available', 'reserved', 'sold', 'blocked')", name="check_seat_status"
        ),
        Index("ix_seats_event_status", "event_id", "status"),
    )

    @property
    def label(self) -> str:
        return f"{self.seat_row}{self.seat_number}"

    def __repr__(self) -> str:
        return f"<Seat(id={self.id}, {self.label}, status={self.status})>"


class SeatReservation(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "seat_reservations"

    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    owner_ref = Column(String(80), nullable=False, index=True)
    seat_ids = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="held")  # held, confirmed, released, expired
    payment_id = Column(String(64), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('held', 'confirmed', 'released', 'expired')", name="check_reservation_status"
        ),
        Index("ix_seat_reservations_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<SeatReservation(id={self.id}, event={self.event_id}, status={self.status})>"
