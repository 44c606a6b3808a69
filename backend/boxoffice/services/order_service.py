"""
Order materialization and order queries.

ORDERING WITHIN ONE MATERIALIZATION
===================================

Everything below runs inside the request transaction:

  1. claim the checkout (UPDATE ... WHERE status='pending'), create the order
  2. issue tickets / bookings per cart item
  3. decrement inventory (conditional UPDATEs, event row locked FOR UPDATE)
  4. credit organizer earnings (organizer row locked FOR UPDATE)
  5. confirm seat reservations, only when the order is fully paid
  6. soft-terminate cart items and the cart, link the checkout to the order

Event ticket and inventory failures abort the whole transaction so the
inventory never drifts. A failing flight/bus/hotel line is rolled back to
its savepoint, logged and skipped; the rest of the order still goes through.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.clock import Clock
from boxoffice.core.exceptions import (
    CheckoutNotPending,
    EventNotFound,
    InventoryExhausted,
    OrderNotFound,
    ValidationFailed,
)
from boxoffice.core.logging import get_logger, log_suppressed
from boxoffice.core.metrics import order_materialization_latency, record_inventory_conflict
from boxoffice.core.money import ZERO, D, round_money
from boxoffice.core.owner import Owner
from boxoffice.db.base import new_id
from boxoffice.models.booking import Bus, BusBooking, FlightBooking, HotelBooking
from boxoffice.models.cart import Cart, CartItem
from boxoffice.models.checkout import Checkout
from boxoffice.models.event import Event, EventPricingTier
from boxoffice.models.order import Order, OrderPayment
from boxoffice.models.ticket import Ticket
from boxoffice.services.earnings_service import EarningsService
from boxoffice.services.interfaces.reservations import SeatReservationClient
from boxoffice.services.payment_service import PaymentClient
from boxoffice.services.policy import PAY, READ, AccessPolicy
from boxoffice.services.ticket_service import TicketIssuer

logger = get_logger(__name__)


def checkout_owner(checkout: Checkout) -> Owner:
    """The owner seat holds were taken under when the items were added."""
    if checkout.user_id and not checkout.is_guest:
        return Owner.user(checkout.user_id)
    return Owner.guest(checkout.cart_id)


def _owner_from_ref(ref: Optional[str]) -> Optional[Owner]:
    if not ref or ":" not in ref:
        return None
    kind, value = ref.split(":", 1)
    return Owner.user(value) if kind == "user" else Owner.guest(value)


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def order_view(order: Order, tickets: Optional[list] = None, ticket_count: Optional[int] = None) -> dict:
    metadata = order.order_metadata or {}
    view = {
        "id": order.id,
        "user_id": order.user_id,
        "is_guest": order.is_guest,
        "guest_email": order.guest_email,
        "confirmation_code": order.confirmation_code,
        "checkout_id": order.checkout_id,
        "payment_id": order.payment_id,
        "subtotal": D(order.subtotal),
        "discount_amount": D(order.discount_amount),
        "total_amount": D(order.total_amount),
        "amount_paid": D(order.amount_paid),
        "balance_due": D(order.balance_due),
        "is_fully_paid": order.is_fully_paid,
        "status": order.status,
        "reservation_ids": metadata.get("reservation_ids", []),
        "created_at": order.created_at,
    }
    if tickets is not None:
        view["tickets"] = [ticket_view(t) for t in tickets]
        view["ticket_count"] = len(tickets)
    elif ticket_count is not None:
        view["ticket_count"] = ticket_count
    return view


def ticket_view(ticket: Ticket) -> dict:
    return {
        "id": ticket.id,
        "ticket_number": ticket.ticket_number,
        "item_type": ticket.item_type,
        "event_id": ticket.event_id,
        "item_ref_id": ticket.item_ref_id,
        "item_title": ticket.item_title,
        "ticket_type": ticket.ticket_type,
        "seat_number": ticket.seat_number,
        "price": D(ticket.price),
        "quantity": ticket.quantity,
        "status": ticket.status,
        "valid_from": ticket.valid_from,
        "valid_until": ticket.valid_until,
        "digital_format": ticket.digital_format,
        "qr_code_data": ticket.qr_code_data,
        "nfc_data": ticket.nfc_data,
        "rfid_data": ticket.rfid_data,
        "barcode_data": ticket.barcode_data,
        "details": ticket.details,
    }


@dataclass
class MaterializedOrder:
    order: Order
    tickets: list = field(default_factory=list)
    bookings_created: int = 0
    events: list = field(default_factory=list)
    credits: list = field(default_factory=list)
    reservation_ids: list = field(default_factory=list)


class OrderMaterializer:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        tickets: TicketIssuer,
        earnings: EarningsService,
        reservations: SeatReservationClient,
    ):
        self.db = db
        self.clock = clock
        self.tickets = tickets
        self.earnings = earnings
        self.reservations = reservations

    async def materialize(
        self,
        checkout: Checkout,
        items: list,
        payment_id: Optional[str],
        paid_amount: Decimal,
    ) -> MaterializedOrder:
        with order_materialization_latency.time():
            return await self._materialize(checkout, items, payment_id, paid_amount)

    async def _materialize(self, checkout, items, payment_id, paid_amount) -> MaterializedOrder:
        now = self.clock.now()
        owner = checkout_owner(checkout)

        claimed = await self.db.execute(
            update(Checkout)
            .where(Checkout.id == checkout.id, Checkout.status == "pending")
            .values(status="completed", completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise CheckoutNotPending(checkout_id=checkout.id)

        total = round_money(checkout.total_amount)
        paid_amount = round_money(paid_amount)
        balance_due = max(ZERO, total - paid_amount)
        is_fully_paid = balance_due == ZERO

        order = Order(
            id=new_id(),
            user_id=checkout.user_id,
            is_guest=checkout.is_guest,
            guest_email=checkout.guest_email,
            guest_first_name=checkout.guest_first_name,
            guest_last_name=checkout.guest_last_name,
            guest_phone=checkout.guest_phone,
            confirmation_code=checkout.confirmation_code,
            checkout_id=checkout.id,
            payment_id=payment_id,
            subtotal=round_money(checkout.subtotal),
            discount_amount=round_money(checkout.discount_amount),
            total_amount=total,
            amount_paid=min(paid_amount, total),
            balance_due=balance_due,
            status="confirmed" if is_fully_paid else "partially_paid",
            billing_info=checkout.billing_info,
            order_metadata={
                "is_fully_paid": is_fully_paid,
                "reservation_ids": [],
                "reservation_owner": owner.key,
            },
            created_at=now,
        )
        self.db.add(order)
        await self.db.flush()
        if payment_id:
            self.db.add(OrderPayment(order_id=order.id, payment_id=payment_id, amount=order.amount_paid, kind="initial"))

        result = MaterializedOrder(order=order)
        item_status = "confirmed" if is_fully_paid else "reserved"
        revenue: "OrderedDict[str, tuple]" = OrderedDict()

        for item in items:
            if item.item_type == "event":
                event = await self._issue_event_item(order, item, item_status, result)
                organizer_id, gross = revenue.get(event.id, (event.organizer_id, ZERO))
                revenue[event.id] = (organizer_id, gross + D(item.total_price))
            else:
                try:
                    async with self.db.begin_nested():
                        await self._issue_external_item(order, item, item_status, result)
                except Exception as e:
                    log_suppressed(
                        logger,
                        "order_item_skipped",
                        e,
                        order_id=order.id,
                        item_id=item.id,
                        item_type=item.item_type,
                    )

        for event_id, (organizer_id, gross) in revenue.items():
            if not organizer_id or gross <= 0:
                continue
            credit = await self.earnings.add_earnings(organizer_id, gross, f"order:{order.id}")
            if credit is not None:
                result.credits.append(credit)

        reservation_ids = [item.reservation_id for item in items if item.reservation_id]
        if is_fully_paid:
            for reservation_id in reservation_ids:
                confirmed = await self.reservations.confirm_purchase(
                    reservation_id, payment_id or f"order:{order.id}", owner
                )
                if not confirmed:
                    logger.warning("reservation_not_confirmed", order_id=order.id, reservation_id=reservation_id)
        result.reservation_ids = reservation_ids
        order.order_metadata = {**order.order_metadata, "reservation_ids": reservation_ids}

        item_ids = [item.id for item in items]
        if item_ids:
            await self.db.execute(
                update(CartItem)
                .where(CartItem.id.in_(item_ids))
                .values(status="checked_out", order_id=order.id, checked_out_at=now)
                .execution_options(synchronize_session=False)
            )
        await self.db.execute(
            update(Cart)
            .where(Cart.id == checkout.cart_id)
            .values(status="completed", order_id=order.id, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Checkout)
            .where(Checkout.id == checkout.id)
            .values(order_id=order.id)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        logger.info(
            "order_materialized",
            order_id=order.id,
            checkout_id=checkout.id,
            tickets=len(result.tickets),
            bookings=result.bookings_created,
            status=order.status,
            balance_due=str(balance_due),
        )
        return result

    async def _issue_event_item(self, order: Order, item: CartItem, status: str, result: MaterializedOrder) -> Event:
        locked = await self.db.execute(
            select(Event).where(Event.id == item.event_id, Event.deleted_at.is_(None)).with_for_update()
        )
        event = locked.scalar_one_or_none()
        if event is None:
            raise EventNotFound(event_id=item.event_id)

        seats = list(item.seat_numbers or [])
        for index in range(item.quantity):
            seat_number = seats[index] if index < len(seats) else None
            ticket = await self.tickets.issue_event_ticket(order, item, event, seat_number, status)
            result.tickets.append(ticket)

        await self._take_inventory(event, item.ticket_type, item.quantity)

        if event.id not in {e["id"] for e in result.events}:
            result.events.append(
                {
                    "id": event.id,
                    "title": event.title,
                    "start_date": event.start_date,
                    "end_date": event.end_date,
                    "venue_id": event.venue_id,
                }
            )
        return event

    async def _take_inventory(self, event: Event, ticket_type: str, quantity: int) -> None:
        tier_result = await self.db.execute(
            select(EventPricingTier.id).where(
                EventPricingTier.event_id == event.id,
                EventPricingTier.name == ticket_type,
                EventPricingTier.deleted_at.is_(None),
            )
        )
        tier_id = tier_result.scalars().first()
        if tier_id is not None:
            taken = await self.db.execute(
                update(EventPricingTier)
                .where(EventPricingTier.id == tier_id, EventPricingTier.available_tickets >= quantity)
                .values(available_tickets=EventPricingTier.available_tickets - quantity)
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount == 0:
                record_inventory_conflict("tickets")
                raise InventoryExhausted(event_id=event.id, ticket_type=ticket_type)

        sold = await self.db.execute(
            update(Event)
            .where(
                Event.id == event.id,
                or_(Event.capacity.is_(None), Event.sold_tickets + quantity <= Event.capacity),
            )
            .values(sold_tickets=Event.sold_tickets + quantity)
            .execution_options(synchronize_session=False)
        )
        if sold.rowcount == 0:
            record_inventory_conflict("tickets")
            raise InventoryExhausted(event_id=event.id, ticket_type=ticket_type)

    async def _issue_external_item(self, order: Order, item: CartItem, status: str, result: MaterializedOrder) -> None:
        details = dict(item.external_details or {})
        total_price = D(item.total_price)

        if item.item_type == "bus":
            exists = await self.db.execute(select(Bus.id).where(Bus.id == item.item_ref_id))
            if exists.scalar_one_or_none() is not None:
                taken = await self.db.execute(
                    update(Bus)
                    .where(Bus.id == item.item_ref_id, Bus.available_seats >= item.quantity)
                    .values(available_seats=Bus.available_seats - item.quantity)
                    .execution_options(synchronize_session=False)
                )
                if taken.rowcount == 0:
                    raise InventoryExhausted("Bus is fully booked", bus_id=item.item_ref_id)
            booking = BusBooking(
                bus_id=item.item_ref_id,
                user_id=order.user_id,
                order_id=order.id,
                seats_count=item.quantity,
                passenger_details=details.get("passengers"),
                total_price=total_price,
                status=status,
            )
        elif item.item_type == "flight":
            booking = FlightBooking(
                flight_offer_id=item.item_ref_id,
                user_id=order.user_id,
                order_id=order.id,
                passengers_count=item.quantity,
                passenger_details=details.get("passengers"),
                contact_info=details.get("contact"),
                flight_details=details or None,
                airline=details.get("airline"),
                total_price=total_price,
                status=status,
            )
        elif item.item_type == "hotel":
            booking = HotelBooking(
                hotel_code=item.item_ref_id,
                user_id=order.user_id,
                order_id=order.id,
                check_in_date=_as_date(details.get("check_in")),
                check_out_date=_as_date(details.get("check_out")),
                rooms_count=item.quantity,
                guest_details=details.get("guests"),
                total_price=total_price,
                status=status,
            )
        else:
            raise ValidationFailed(f"Unsupported item type {item.item_type}", item_id=item.id)

        self.db.add(booking)
        await self.db.flush()
        ticket = await self.tickets.issue_universal_ticket(
            order, item, status, details={**details, "booking_id": booking.id}
        )
        result.tickets.append(ticket)
        result.bookings_created += 1


class OrderService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        payments: PaymentClient,
        reservations: SeatReservationClient,
        policy: AccessPolicy,
    ):
        self.db = db
        self.clock = clock
        self.payments = payments
        self.reservations = reservations
        self.policy = policy

    async def _tickets(self, order_id: str) -> list:
        result = await self.db.execute(
            select(Ticket).where(Ticket.order_id == order_id).order_by(Ticket.created_at, Ticket.ticket_number)
        )
        return list(result.scalars().all())

    async def list_orders(self, owner: Owner) -> list:
        counts = (
            select(Ticket.order_id, func.count(Ticket.id).label("ticket_count"))
            .group_by(Ticket.order_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Order, func.coalesce(counts.c.ticket_count, 0))
            .outerjoin(counts, counts.c.order_id == Order.id)
            .where(Order.user_id == owner.user_id)
            .order_by(Order.created_at.desc())
        )
        return [order_view(order, ticket_count=count) for order, count in result.all()]

    async def get_order(self, owner: Owner, order_id: str) -> dict:
        order = await self.db.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id=order_id)
        self.policy.enforce(owner, order, READ, not_found=OrderNotFound)
        return order_view(order, tickets=await self._tickets(order.id))

    async def pay_balance(self, owner: Owner, order_id: str, payment_id: str) -> dict:
        """
        Apply a later completed payment to a partially paid order. When the
        balance reaches zero the reserved tickets and bookings are confirmed
        and every seat hold recorded on the order is confirmed.
        """
        locked = await self.db.execute(select(Order).where(Order.id == order_id).with_for_update())
        order = locked.scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id=order_id)
        self.policy.enforce(owner, order, PAY, not_found=OrderNotFound)

        if order.is_fully_paid:
            raise ValidationFailed("Order is already fully paid", order_id=order.id)

        payment = await self.payments.get_completed_payment(payment_id, owner)
        await self.payments.ensure_unapplied(payment.id)
        paid = self.payments.paid_amount(payment)

        total = D(order.total_amount)
        amount_paid = min(total, D(order.amount_paid) + paid)
        balance_due = max(ZERO, total - amount_paid)
        order.amount_paid = amount_paid
        order.balance_due = balance_due
        self.db.add(OrderPayment(order_id=order.id, payment_id=payment.id, amount=paid, kind="balance"))

        if balance_due == ZERO:
            order.status = "confirmed"
            metadata = dict(order.order_metadata or {})
            metadata["is_fully_paid"] = True
            order.order_metadata = metadata

            await self.db.execute(
                update(Ticket)
                .where(Ticket.order_id == order.id, Ticket.status == "reserved")
                .values(status="confirmed")
                .execution_options(synchronize_session=False)
            )
            for model in (BusBooking, FlightBooking, HotelBooking):
                await self.db.execute(
                    update(model)
                    .where(model.order_id == order.id, model.status == "reserved")
                    .values(status="confirmed")
                    .execution_options(synchronize_session=False)
                )

            holder = _owner_from_ref(metadata.get("reservation_owner")) or owner
            for reservation_id in metadata.get("reservation_ids", []):
                confirmed = await self.reservations.confirm_purchase(reservation_id, payment.id, holder)
                if not confirmed:
                    logger.warning("reservation_not_confirmed", order_id=order.id, reservation_id=reservation_id)

        await self.db.flush()
        logger.info(
            "order_balance_paid",
            order_id=order.id,
            payment_id=payment.id,
            amount=str(paid),
            balance_due=str(balance_due),
        )
        return order_view(order, tickets=await self._tickets(order.id))
