"""
Per-type booking rows for non-event cart items.

Flights and hotels are keyed by the supplier's external identifiers (offer
id, hotel code); buses are local inventory with `available_seats`.
"""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, JSON, Numeric, String

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Bus(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "buses"

    name = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=True)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_bus_available_non_negative"),
    )


class BusBooking(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "bus_bookings"

    bus_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    seats_count = Column(Integer, nullable=False)
    passenger_details = Column(JSON, nullable=True)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="reserved")


class FlightBooking(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "flight_bookings"

    flight_offer_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    passengers_count = Column(Integer, nullable=False)
    passenger_details = Column(JSON, nullable=True)
    contact_info = Column(JSON, nullable=True)
    flight_details = Column(JSON, nullable=True)
    airline = Column(String(50), nullable=True)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="reserved")


class HotelBooking(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "hotel_bookings"

    hotel_code = Column(String(255), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=True)
    check_out_date = Column(Date, nullable=True)
    rooms_count = Column(Integer, nullable=False)
    guest_details = Column(JSON, nullable=True)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="reserved")
