from boxoffice.models.user import User
from boxoffice.models.event import Event, EventPricingTier, Venue
from boxoffice.models.seat import Seat, SeatReservation
from boxoffice.models.cart import Cart, CartItem
from boxoffice.models.checkout import Checkout
from boxoffice.models.order import Order, OrderPayment
from boxoffice.models.ticket import Ticket
from boxoffice.models.booking import Bus, BusBooking, FlightBooking, HotelBooking
from boxoffice.models.payment import Payment
from boxoffice.models.discount import DiscountCode
from boxoffice.models.audit import AuditLog

__all__ = [
    "User", "Venue", "Event", "EventPricingTier", "Seat", "SeatReservation",
    "Cart", "CartItem", "Checkout", "Order", "OrderPayment", "Ticket",
    "Bus", "BusBooking", "FlightBooking", "HotelBooking",
    "Payment", "DiscountCode", "AuditLog",
]
