"""
Tickets: event entry credentials and universal display tickets for
flight, bus and hotel bookings.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

TICKET_STATUSES = ("reserved", "confirmed", "used", "cancelled", "refunded", "refund_requested")


class Ticket(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "tickets"

    ticket_number = Column(String(40), unique=True, nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    item_type = Column(String(20), nullable=False, default="event")
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True, index=True)
    item_ref_id = Column(String(255), nullable=True)
    item_title = Column(String(255), nullable=True)
    ticket_type = Column(String(50), nullable=True)
    seat_number = Column(String(20), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="reserved")
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)

    digital_format = Column(String(20), nullable=True)  # qr_code, nfc, rfid, barcode
    qr_code_data = Column(Text, nullable=True)
    nfc_data = Column(Text, nullable=True)
    rfid_data = Column(Text, nullable=True)
    barcode_data = Column(Text, nullable=True)
    details = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('reserved', 'confirmed', 'used', 'cancelled', 'refunded', 'refund_requested')",
            name="check_ticket_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Ticket(number={self.ticket_number}, type={self.item_type}, status={self.status})>"
