"""
Guest retrieval: order lookup by (email, confirmation code), access-link
resend, account conversion, and the guest lifecycle sweeps.

Guest identity is the pair (email lowercased, code uppercased). Converting
to an account relinks every order placed with that email, then every
ticket and booking of those orders, in one transaction.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.clock import Clock
from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import AccountAlreadyExists, OrderNotFound, ValidationFailed
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_sweep
from boxoffice.core.money import D
from boxoffice.core.owner import Owner
from boxoffice.core.security import hash_password
from boxoffice.models.booking import BusBooking, FlightBooking, HotelBooking
from boxoffice.models.cart import Cart, CartItem
from boxoffice.models.checkout import Checkout
from boxoffice.models.event import Event, Venue
from boxoffice.models.order import Order
from boxoffice.models.ticket import Ticket
from boxoffice.models.user import User
from boxoffice.schemas.checkout import GuestInfo
from boxoffice.services.cart_service import CartService, live_items
from boxoffice.services.checkout_service import CheckoutService
from boxoffice.services.notification_service import Notifier
from boxoffice.services.order_service import ticket_view

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8


def _identity(email: Optional[str], code: Optional[str]) -> tuple:
    if not email or not code:
        raise ValidationFailed("Email and confirmation code are required")
    return email.strip().lower(), code.strip().upper()


def _billing_value(billing: dict, *keys) -> str:
    for key in keys:
        value = billing.get(key)
        if value:
            return str(value)
    return ""


class GuestService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        carts: CartService,
        checkouts: CheckoutService,
        notifier: Notifier,
        archive_days: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.carts = carts
        self.checkouts = checkouts
        self.notifier = notifier
        self.archive_days = archive_days or get_settings().GUEST_ORDER_ARCHIVE_DAYS

    async def _matching_guest_order(self, email: str, code: str) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(
                Order.is_guest.is_(True),
                Order.guest_email == email,
                Order.confirmation_code == code,
            )
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound()
        return order

    async def get_guest_tickets(self, email: str, code: str) -> dict:
        email, code = _identity(email, code)
        order = await self._matching_guest_order(email, code)

        result = await self.db.execute(
            select(Ticket, Event, Venue)
            .outerjoin(Event, Ticket.event_id == Event.id)
            .outerjoin(Venue, Event.venue_id == Venue.id)
            .where(Ticket.order_id == order.id)
            .order_by(Ticket.created_at, Ticket.ticket_number)
        )
        tickets = []
        for ticket, event, venue in result.all():
            view = ticket_view(ticket)
            view.update(
                event_title=event.title if event is not None else None,
                event_date=event.start_date if event is not None else None,
                venue_name=venue.name if venue is not None else None,
                venue_address=venue.address if venue is not None else None,
                venue_city=venue.city if venue is not None else None,
            )
            tickets.append(view)

        return {
            "order_id": order.id,
            "confirmation_code": order.confirmation_code,
            "guest_name": f"{order.guest_first_name or ''} {order.guest_last_name or ''}".strip(),
            "guest_email": order.guest_email,
            "total_amount": D(order.total_amount),
            "amount_paid": D(order.amount_paid),
            "balance_due": D(order.balance_due),
            "order_date": order.created_at,
            "status": order.status,
            "ticket_count": len(tickets),
            "tickets": tickets,
        }

    async def send_guest_access_link(self, email: str) -> None:
        """Re-send the confirmation code. Silent when the address has no orders."""
        if not email or not email.strip():
            raise ValidationFailed("Email is required", field="email")
        email = email.strip().lower()

        result = await self.db.execute(
            select(Order.confirmation_code)
            .where(
                Order.is_guest.is_(True),
                Order.guest_email == email,
                Order.status == "confirmed",
                Order.confirmation_code.is_not(None),
            )
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        code = result.scalar_one_or_none()
        if code is None:
            logger.info("guest_access_link_no_orders")
            return
        self.notifier.guest_access_link(email, code)
        logger.info("guest_access_link_queued")

    async def get_guest_order_history(self, email: str, code: str) -> list:
        email, code = _identity(email, code)
        counts = (
            select(Ticket.order_id, func.count(Ticket.id).label("ticket_count"))
            .group_by(Ticket.order_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Order, func.coalesce(counts.c.ticket_count, 0))
            .outerjoin(counts, counts.c.order_id == Order.id)
            .where(Order.guest_email == email, Order.confirmation_code == code)
            .order_by(Order.created_at.desc())
        )
        rows = result.all()
        if not rows:
            raise OrderNotFound()
        return [
            {
                "id": order.id,
                "confirmation_code": order.confirmation_code,
                "total_amount": D(order.total_amount),
                "status": order.status,
                "created_at": order.created_at,
                "ticket_count": count,
            }
            for order, count in rows
        ]

    async def convert_guest_to_account(
        self,
        email: str,
        code: str,
        password: str,
        password_confirm: Optional[str] = None,
    ) -> dict:
        email, code = _identity(email, code)
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed("Password must be at least 8 characters", field="password")
        if password_confirm is not None and password_confirm != password:
            raise ValidationFailed("Passwords do not match", field="password_confirm")

        # Lock every order on this email so a concurrent guest checkout cannot
        # slip in between the relink statements
        locked = await self.db.execute(
            select(Order).where(Order.guest_email == email).order_by(Order.created_at.desc()).with_for_update()
        )
        orders = list(locked.scalars().all())
        source = next(
            (o for o in orders if o.confirmation_code == code),
            None,
        )
        if source is None:
            raise OrderNotFound()

        existing = await self.db.execute(select(User.id).where(func.lower(User.email) == email))
        if existing.scalar_one_or_none() is not None or not source.is_guest:
            raise AccountAlreadyExists(email=email)

        user = User(
            email=email,
            hashed_password=await asyncio.to_thread(hash_password, password),
            first_name=source.guest_first_name,
            last_name=source.guest_last_name,
            phone=source.guest_phone,
            role="customer",
            is_active=True,
            is_email_verified=True,
            created_at=self.clock.now(),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(user)
                await self.db.flush()
        except IntegrityError:
            raise AccountAlreadyExists(email=email)

        relinked = await self.db.execute(
            update(Order)
            .where(Order.guest_email == email)
            .values(user_id=user.id, is_guest=False)
            .execution_options(synchronize_session=False)
        )
        order_ids = select(Order.id).where(Order.user_id == user.id).scalar_subquery()
        await self.db.execute(
            update(Ticket)
            .where(Ticket.order_id.in_(order_ids))
            .values(user_id=user.id)
            .execution_options(synchronize_session=False)
        )
        for model in (BusBooking, FlightBooking, HotelBooking):
            await self.db.execute(
                update(model)
                .where(model.order_id.in_(order_ids))
                .values(user_id=user.id)
                .execution_options(synchronize_session=False)
            )
        await self.db.flush()

        logger.info("guest_converted", user_id=user.id, orders_linked=relinked.rowcount)
        self.notifier.audit(
            [
                {
                    "user_id": user.id,
                    "action": "GUEST_CONVERTED",
                    "resource": "user",
                    "resource_id": user.id,
                    "new_values": {"orders_linked": relinked.rowcount},
                }
            ]
        )
        return {
            "user_id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "orders_linked": relinked.rowcount,
        }

    async def complete_guest_checkout(
        self,
        cart_id: str,
        billing_address: dict,
        payment_id: Optional[str] = None,
        checkout_id: Optional[str] = None,
    ) -> dict:
        """
        One-call guest completion. Reuses the cart's pending checkout (or the
        one named), replays an already completed one, and otherwise initiates
        a checkout from the billing address first.
        """
        owner = Owner.guest(cart_id)
        billing_address = dict(billing_address or {})

        if checkout_id is None:
            completed = await self.db.execute(
                select(Checkout.id)
                .where(Checkout.cart_id == cart_id, Checkout.is_guest.is_(True), Checkout.status == "completed")
                .limit(1)
            )
            checkout_id = completed.scalar_one_or_none()

        if checkout_id is None:
            pending = await self.checkouts.pending_guest_checkout(cart_id)
            if pending is not None:
                checkout_id = pending.id
            else:
                guest = GuestInfo(
                    email=_billing_value(billing_address, "email"),
                    first_name=_billing_value(billing_address, "firstName", "first_name"),
                    last_name=_billing_value(billing_address, "lastName", "last_name"),
                    phone=_billing_value(billing_address, "phone", "phoneNumber"),
                )
                initiated = await self.checkouts.initiate_checkout(
                    owner,
                    _billing_value(billing_address, "paymentMethod", "payment_method") or "stripe",
                    billing_address,
                    guest=guest,
                )
                checkout_id = initiated["checkout_id"]

        return await self.checkouts.complete_checkout(
            owner, checkout_id, payment_id, settle_in_full=payment_id is None
        )

    async def expire_guest_carts(self, now: Optional[datetime] = None) -> int:
        """Guest carts past their TTL become expired and give their seats back."""
        now = now or self.clock.now()
        result = await self.db.execute(
            select(Cart.id).where(Cart.is_guest.is_(True), Cart.status == "active", Cart.expires_at < now)
        )
        expired = 0
        for cart_id in result.scalars().all():
            claimed = await self.db.execute(
                update(Cart)
                .where(Cart.id == cart_id, Cart.status == "active")
                .values(status="expired")
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                continue
            items = await self.db.execute(
                select(CartItem).where(CartItem.cart_id == cart_id, live_items())
            )
            for item in items.scalars().all():
                if item.reservation_id:
                    await self.carts.release_quietly(item.reservation_id, Owner.guest(cart_id))
            expired += 1

        record_sweep("guest_cart", expired)
        if expired:
            logger.info("guest_carts_expired", count=expired)
        return expired

    async def archive_old_guest_orders(self, now: Optional[datetime] = None) -> int:
        now = now or self.clock.now()
        cutoff = now - timedelta(days=self.archive_days)
        result = await self.db.execute(
            update(Order)
            .where(Order.is_guest.is_(True), Order.created_at < cutoff, Order.status != "archived")
            .values(status="archived")
            .execution_options(synchronize_session=False)
        )
        archived = result.rowcount or 0
        record_sweep("guest_order", archived)
        if archived:
            logger.info("guest_orders_archived", count=archived)
        return archived
