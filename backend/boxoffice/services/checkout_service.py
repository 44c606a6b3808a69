"""
Checkout orchestrator.

State machine:

             initiate
    (none) ----------> pending --complete--> completed
                          |
                          +--cancel--> cancelled (seat holds released)
                          +--expire--> expired   (holds left to their own TTL)

Every transition out of `pending` is a conditional UPDATE, so two concurrent
completions of the same checkout produce one order; the loser replays it.

Transactions: completion commits explicitly. On an inventory conflict the
request transaction is rolled back, the checkout's seat holds are released
in a fresh transaction and the conflict is raised; the cart stays active.
Emails and audit rows are queued only after the order is committed.
"""

import re
import secrets
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.clock import Clock, as_utc
from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import (
    CartEmpty,
    CartNotFound,
    CheckoutExpired,
    CheckoutInProgress,
    CheckoutNotFound,
    CheckoutNotPending,
    Conflict,
    DepositBelowMinimum,
    DepositDeadlinePassed,
    DepositNotAllowed,
    InventoryExhausted,
    SeatsUnavailable,
    ValidationFailed,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_checkout, record_sweep
from boxoffice.core.money import ZERO, D, round_money
from boxoffice.core.owner import Owner
from boxoffice.models.booking import BusBooking, FlightBooking, HotelBooking
from boxoffice.models.cart import CartItem
from boxoffice.models.checkout import Checkout
from boxoffice.models.event import Event, Venue
from boxoffice.models.order import Order
from boxoffice.models.ticket import Ticket
from boxoffice.models.user import User
from boxoffice.schemas.checkout import GuestInfo
from boxoffice.services.cart_service import CartService, live_items
from boxoffice.services.interfaces.checkout_guard import CheckoutGuard
from boxoffice.services.notification_service import Notifier
from boxoffice.services.order_service import MaterializedOrder, OrderMaterializer, checkout_owner
from boxoffice.services.payment_service import PaymentClient
from boxoffice.services.policy import READ, WRITE, AccessPolicy

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_NOISE = re.compile(r"[\s\-()]")
MAX_CODE_ATTEMPTS = 5


def normalize_phone(phone: str) -> str:
    return PHONE_NOISE.sub("", phone or "")


def new_confirmation_code() -> str:
    return secrets.token_hex(6).upper()


def checkout_view(checkout: Checkout) -> dict:
    return {
        "checkout_id": checkout.id,
        "cart_id": checkout.cart_id,
        "status": checkout.status,
        "payment_method": checkout.payment_method,
        "subtotal": D(checkout.subtotal),
        "discount_amount": D(checkout.discount_amount),
        "total_amount": D(checkout.total_amount),
        "expires_at": checkout.expires_at,
        "is_guest": checkout.is_guest,
        "guest_email": checkout.guest_email,
        "confirmation_code": checkout.confirmation_code,
        "order_id": checkout.order_id,
    }


class CheckoutService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        carts: CartService,
        payments: PaymentClient,
        materializer: OrderMaterializer,
        guard: CheckoutGuard,
        policy: AccessPolicy,
        notifier: Notifier,
        checkout_ttl_minutes: Optional[int] = None,
        phone_pattern: Optional[str] = None,
    ):
        settings = get_settings()
        self.db = db
        self.clock = clock
        self.carts = carts
        self.payments = payments
        self.materializer = materializer
        self.guard = guard
        self.policy = policy
        self.notifier = notifier
        self.checkout_ttl = timedelta(minutes=checkout_ttl_minutes or settings.CHECKOUT_TTL_MINUTES)
        self.phone_pattern = re.compile(phone_pattern or settings.GUEST_PHONE_PATTERN)

    # --- initiate ---------------------------------------------------------

    async def initiate_checkout(
        self,
        owner: Owner,
        payment_method: str,
        billing_info: Optional[dict],
        guest: Optional[GuestInfo] = None,
    ) -> dict:
        cart = await self.carts.find_active_cart(owner)
        if cart is None:
            if owner.is_guest:
                raise CartNotFound()
            raise CartEmpty()

        await self.carts.refresh_total(cart)
        subtotal = round_money(cart.total_amount)
        discount_amount = round_money(cart.discount_amount)
        total = subtotal - discount_amount
        if subtotal <= ZERO or total <= ZERO:
            raise CartEmpty("Cart total must be greater than zero", cart_id=cart.id)
        if not billing_info:
            raise ValidationFailed("Billing information is required", field="billing_info")

        guest_fields = {}
        if owner.is_guest:
            if guest is None:
                raise ValidationFailed("Guest information is required", field="guest_info")
            guest_fields = await self._guest_fields(guest)

        now = self.clock.now()
        checkout = Checkout(
            cart_id=cart.id,
            user_id=owner.user_id,
            is_guest=owner.is_guest,
            payment_method=payment_method,
            subtotal=subtotal,
            discount_amount=discount_amount,
            total_amount=total,
            billing_info=billing_info,
            status="pending",
            created_at=now,
            expires_at=now + self.checkout_ttl,
            **guest_fields,
        )
        self.db.add(checkout)
        await self.db.flush()

        logger.info(
            "checkout_initiated",
            checkout_id=checkout.id,
            cart_id=cart.id,
            total=str(total),
            is_guest=owner.is_guest,
        )
        return checkout_view(checkout)

    async def _guest_fields(self, guest: GuestInfo) -> dict:
        email = (guest.email or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationFailed("Invalid email address", field="email")
        phone = normalize_phone(guest.phone)
        if not self.phone_pattern.match(phone):
            raise ValidationFailed("Invalid phone number", field="phone")
        first_name = (guest.first_name or "").strip()
        last_name = (guest.last_name or "").strip()
        if not first_name or not last_name:
            raise ValidationFailed("First and last name are required", field="name")

        return {
            "guest_email": email,
            "guest_first_name": first_name,
            "guest_last_name": last_name,
            "guest_phone": phone,
            "confirmation_code": await self._confirmation_code_for(email),
        }

    async def _confirmation_code_for(self, email: str) -> str:
        """The same guest email keeps one confirmation code across orders."""
        existing = await self.db.execute(
            select(Order.confirmation_code)
            .where(Order.guest_email == email, Order.is_guest.is_(True), Order.confirmation_code.is_not(None))
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        code = existing.scalar_one_or_none()
        if code:
            return code

        pending = await self.db.execute(
            select(Checkout.confirmation_code)
            .where(Checkout.guest_email == email, Checkout.confirmation_code.is_not(None))
            .order_by(Checkout.created_at.desc())
            .limit(1)
        )
        code = pending.scalar_one_or_none()
        if code:
            return code

        for _ in range(MAX_CODE_ATTEMPTS):
            code = new_confirmation_code()
            taken = await self.db.execute(
                select(func.count(Checkout.id)).where(Checkout.confirmation_code == code)
            )
            if taken.scalar_one() == 0:
                return code
        raise Conflict("Could not allocate a confirmation code, please retry")

    # --- complete ---------------------------------------------------------

    async def _load(self, owner: Owner, checkout_id: str, action: str) -> Checkout:
        result = await self.db.execute(
            select(Checkout).where(Checkout.id == checkout_id).execution_options(populate_existing=True)
        )
        checkout = result.scalar_one_or_none()
        if checkout is None:
            raise CheckoutNotFound(checkout_id=checkout_id)
        self.policy.enforce(owner, checkout, action, not_found=CheckoutNotFound)
        return checkout

    async def complete_checkout(
        self,
        owner: Owner,
        checkout_id: str,
        payment_id: Optional[str],
        settle_in_full: bool = False,
    ) -> dict:
        """
        Turn a pending checkout into an order. Replays the existing order when
        the checkout is already completed.

        settle_in_full: the amount was captured upstream without a payment
        record (guest storefront flow); skips payment lookup and deposit rules.
        """
        checkout = await self._load(owner, checkout_id, WRITE)

        if checkout.status == "completed" and checkout.order_id:
            record_checkout("replayed")
            return await self._completion_view(checkout.order_id, replayed=True)
        if checkout.status != "pending":
            record_checkout("rejected")
            raise CheckoutNotPending(checkout_id=checkout_id, status=checkout.status)
        if as_utc(checkout.expires_at) < self.clock.now():
            record_checkout("rejected")
            raise CheckoutExpired(checkout_id=checkout_id)

        if not await self.guard.acquire(checkout_id):
            record_checkout("rejected")
            raise CheckoutInProgress(checkout_id=checkout_id)
        try:
            return await self._complete(checkout, owner, payment_id, settle_in_full)
        finally:
            await self.guard.release(checkout_id)

    async def _complete(self, checkout: Checkout, owner: Owner, payment_id, settle_in_full) -> dict:
        checkout_id = checkout.id
        holder = checkout_owner(checkout)
        total = round_money(checkout.total_amount)

        result = await self.db.execute(
            select(CartItem)
            .where(CartItem.cart_id == checkout.cart_id, live_items())
            .order_by(CartItem.created_at, CartItem.id)
        )
        items = list(result.scalars().all())
        if not items:
            raise CartEmpty(cart_id=checkout.cart_id)
        reservation_ids = [item.reservation_id for item in items if item.reservation_id]

        if settle_in_full:
            applied_payment_id = None
            paid_amount = total
        else:
            payment = await self.payments.get_completed_payment(payment_id, owner)
            await self.payments.ensure_unapplied(payment.id)
            applied_payment_id = payment.id
            paid_amount = self.payments.paid_amount(payment)
            await self._validate_deposits(items, paid_amount, total)

        try:
            materialized = await self.materializer.materialize(checkout, items, applied_payment_id, paid_amount)
        except (InventoryExhausted, SeatsUnavailable) as e:
            await self.db.rollback()
            for reservation_id in reservation_ids:
                await self.carts.release_quietly(reservation_id, holder)
            await self.db.commit()
            record_checkout("conflict")
            logger.warning(
                "checkout_inventory_conflict",
                checkout_id=checkout_id,
                error=e.code,
                released=len(reservation_ids),
            )
            raise
        except CheckoutNotPending:
            # A concurrent completion got there first
            await self.db.rollback()
            current = await self.db.get(Checkout, checkout_id, populate_existing=True)
            if current is not None and current.status == "completed" and current.order_id:
                record_checkout("replayed")
                return await self._completion_view(current.order_id, replayed=True)
            raise

        view = self._materialized_view(materialized, checkout_id)
        email_to = await self._recipient(materialized.order)
        snapshot = await self._notification_snapshot(materialized)
        await self.db.commit()
        record_checkout("completed")

        logger.info(
            "checkout_completed",
            checkout_id=checkout_id,
            order_id=view["order_id"],
            tickets=view["tickets_created"],
            status=view["status"],
        )
        self._notify(email_to, snapshot, materialized, checkout_id, owner)
        return view

    async def _validate_deposits(self, items: list, paid_amount: Decimal, total: Decimal) -> None:
        if paid_amount >= total:
            return

        external = [item for item in items if item.item_type != "event"]
        if external:
            raise DepositNotAllowed(
                items=[{"item_id": i.id, "item_type": i.item_type, "title": i.item_title} for i in external],
                paid_amount=str(paid_amount),
            )

        subtotals: "OrderedDict[str, Decimal]" = OrderedDict()
        for item in items:
            subtotals[item.event_id] = subtotals.get(item.event_id, ZERO) + D(item.total_price)

        result = await self.db.execute(select(Event).where(Event.id.in_(list(subtotals))))
        events = {event.id: event for event in result.scalars().all()}

        blocking = [events[eid] for eid in subtotals if eid in events and not events[eid].allow_deposit]
        if blocking:
            raise DepositNotAllowed(
                events=[{"event_id": e.id, "event_title": e.title} for e in blocking],
                paid_amount=str(paid_amount),
            )

        now = self.clock.now()
        for event_id, subtotal in subtotals.items():
            event = events.get(event_id)
            if event is None:
                continue
            if event.deposit_type == "percentage":
                policy_min = subtotal * D(event.deposit_value) / 100
            else:
                policy_min = D(event.deposit_value)
            required_min = round_money(max(D(event.min_deposit_amount), policy_min))

            if paid_amount < required_min:
                raise DepositBelowMinimum(
                    f"Minimum deposit for {event.title} is {required_min}",
                    event_id=event.id,
                    event_title=event.title,
                    required_min=str(required_min),
                    paid_amount=str(paid_amount),
                )
            if event.deposit_due_by is not None and as_utc(event.deposit_due_by) < now:
                raise DepositDeadlinePassed(event_id=event.id, event_title=event.title)

    def _materialized_view(self, materialized: MaterializedOrder, checkout_id: str) -> dict:
        order = materialized.order
        return {
            "order_id": order.id,
            "checkout_id": checkout_id,
            "confirmation_code": order.confirmation_code,
            "tickets_created": len(materialized.tickets),
            "bookings_created": materialized.bookings_created,
            "total_amount": D(order.total_amount),
            "amount_paid": D(order.amount_paid),
            "balance_due": D(order.balance_due),
            "is_fully_paid": order.is_fully_paid,
            "status": order.status,
            "replayed": False,
        }

    async def _completion_view(self, order_id: str, replayed: bool = False) -> dict:
        order = await self.db.get(Order, order_id)
        tickets = await self.db.execute(select(func.count(Ticket.id)).where(Ticket.order_id == order_id))
        bookings = 0
        for model in (BusBooking, FlightBooking, HotelBooking):
            counted = await self.db.execute(select(func.count(model.id)).where(model.order_id == order_id))
            bookings += counted.scalar_one()
        return {
            "order_id": order.id,
            "checkout_id": order.checkout_id,
            "confirmation_code": order.confirmation_code,
            "tickets_created": tickets.scalar_one(),
            "bookings_created": bookings,
            "total_amount": D(order.total_amount),
            "amount_paid": D(order.amount_paid),
            "balance_due": D(order.balance_due),
            "is_fully_paid": order.is_fully_paid,
            "status": order.status,
            "replayed": replayed,
        }

    async def _recipient(self, order: Order) -> Optional[str]:
        if order.is_guest or not order.user_id:
            return order.guest_email
        result = await self.db.execute(select(User.email).where(User.id == order.user_id))
        return result.scalar_one_or_none()

    async def _notification_snapshot(self, materialized: MaterializedOrder) -> dict:
        order = materialized.order
        venue_ids = [e["venue_id"] for e in materialized.events if e.get("venue_id")]
        locations = {}
        if venue_ids:
            result = await self.db.execute(select(Venue).where(Venue.id.in_(venue_ids)))
            locations = {
                v.id: ", ".join(part for part in (v.name, v.address, v.city) if part)
                for v in result.scalars().all()
            }
        return {
            "order": {
                "id": order.id,
                "confirmation_code": order.confirmation_code,
                "total_amount": D(order.total_amount),
                "amount_paid": D(order.amount_paid),
                "balance_due": D(order.balance_due),
                "created_at": order.created_at,
            },
            "tickets": [
                {
                    "id": t.id,
                    "ticket_number": t.ticket_number,
                    "item_title": t.item_title,
                    "seat_number": t.seat_number,
                    "qr_code_data": t.qr_code_data,
                }
                for t in materialized.tickets
            ],
            "events": [{**e, "location": locations.get(e.get("venue_id"))} for e in materialized.events],
        }

    def _notify(self, email_to, snapshot: dict, materialized: MaterializedOrder, checkout_id: str, owner: Owner) -> None:
        order = snapshot["order"]
        actor_id = owner.user_id
        entries = [
            {
                "user_id": actor_id,
                "action": "CHECKOUT_COMPLETED",
                "resource": "checkout",
                "resource_id": checkout_id,
                "new_values": {"order_id": order["id"]},
            },
            {
                "user_id": actor_id,
                "action": "ORDER_CREATED",
                "resource": "order",
                "resource_id": order["id"],
                "new_values": {
                    "total_amount": str(order["total_amount"]),
                    "amount_paid": str(order["amount_paid"]),
                    "balance_due": str(order["balance_due"]),
                },
            },
        ]
        entries += [
            {
                "user_id": actor_id,
                "action": "TICKET_CREATED",
                "resource": "ticket",
                "resource_id": t["id"],
                "new_values": {"ticket_number": t["ticket_number"], "order_id": order["id"]},
            }
            for t in snapshot["tickets"]
        ]
        entries += [credit.audit_entry() for credit in materialized.credits]

        self.notifier.audit(entries)
        self.notifier.order_confirmation(email_to, order, snapshot["tickets"], snapshot["events"])

    # --- cancel / expire / read ------------------------------------------

    async def cancel_checkout(self, owner: Owner, checkout_id: str) -> dict:
        checkout = await self._load(owner, checkout_id, WRITE)
        if checkout.status == "cancelled":
            return checkout_view(checkout)
        if checkout.status != "pending":
            raise CheckoutNotPending(checkout_id=checkout_id, status=checkout.status)

        now = self.clock.now()
        claimed = await self.db.execute(
            update(Checkout)
            .where(Checkout.id == checkout_id, Checkout.status == "pending")
            .values(status="cancelled", cancelled_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            checkout = await self._load(owner, checkout_id, READ)
            if checkout.status == "cancelled":
                return checkout_view(checkout)
            raise CheckoutNotPending(checkout_id=checkout_id, status=checkout.status)

        holder = checkout_owner(checkout)
        result = await self.db.execute(
            select(CartItem).where(CartItem.cart_id == checkout.cart_id, live_items())
        )
        released = 0
        for item in result.scalars().all():
            if not item.reservation_id:
                continue
            await self.carts.release_quietly(item.reservation_id, holder)
            control = {k: v for k, v in (item.control or {}).items() if k != "reservation_id"}
            item.control = control or None
            item.seat_numbers = None
            released += 1
        await self.db.flush()

        checkout = await self._load(owner, checkout_id, READ)
        logger.info("checkout_cancelled", checkout_id=checkout_id, reservations_released=released)
        return checkout_view(checkout)

    async def get_checkout(self, owner: Owner, checkout_id: str) -> dict:
        return checkout_view(await self._load(owner, checkout_id, READ))

    async def expire_stale_checkouts(self, now: Optional[datetime] = None) -> int:
        """Pending checkouts past their expiry become expired. Seat holds are left alone."""
        now = now or self.clock.now()
        result = await self.db.execute(
            update(Checkout)
            .where(Checkout.status == "pending", Checkout.expires_at < now)
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        expired = result.rowcount or 0
        record_sweep("checkout", expired)
        if expired:
            logger.info("checkouts_expired", count=expired)
        return expired

    async def pending_guest_checkout(self, cart_id: str) -> Optional[Checkout]:
        result = await self.db.execute(
            select(Checkout)
            .where(
                Checkout.cart_id == cart_id,
                Checkout.is_guest.is_(True),
                Checkout.status == "pending",
                Checkout.expires_at >= self.clock.now(),
            )
            .order_by(Checkout.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
