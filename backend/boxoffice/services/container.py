"""
Wires the checkout services for one database session.

Request handlers and the TTL sweeper both build their collaborators here so
the dependency graph lives in one place.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.clock import Clock
from boxoffice.core.config import get_settings
from boxoffice.services.cart_service import CartService
from boxoffice.services.checkout_service import CheckoutService
from boxoffice.services.earnings_service import EarningsService
from boxoffice.services.guest_service import GuestService
from boxoffice.services.interfaces.checkout_guard import CheckoutGuard
from boxoffice.services.notification_service import Notifier
from boxoffice.services.order_service import OrderMaterializer, OrderService
from boxoffice.services.payment_service import PaymentClient
from boxoffice.services.policy import AccessPolicy
from boxoffice.services.seat_service import SeatReservationService
from boxoffice.services.ticket_service import TicketIssuer


@dataclass
class Services:
    reservations: SeatReservationService
    carts: CartService
    checkouts: CheckoutService
    orders: OrderService
    guests: GuestService


def build_services(db: AsyncSession, clock: Clock, notifier: Notifier, guard: CheckoutGuard) -> Services:
    settings = get_settings()
    policy = AccessPolicy()
    reservations = SeatReservationService(db, clock, settings.SEAT_HOLD_MINUTES)
    payments = PaymentClient(db)
    carts = CartService(db, clock, reservations, settings.CART_TTL_HOURS)
    materializer = OrderMaterializer(
        db,
        clock,
        TicketIssuer(db, clock, settings.TICKET_SIGNING_KEY),
        EarningsService(db),
        reservations,
    )
    checkouts = CheckoutService(
        db,
        clock,
        carts,
        payments,
        materializer,
        guard,
        policy,
        notifier,
        settings.CHECKOUT_TTL_MINUTES,
        settings.GUEST_PHONE_PATTERN,
    )
    return Services(
        reservations=reservations,
        carts=carts,
        checkouts=checkouts,
        orders=OrderService(db, clock, payments, reservations, policy),
        guests=GuestService(db, clock, carts, checkouts, notifier, settings.GUEST_ORDER_ARCHIVE_DAYS),
    )
