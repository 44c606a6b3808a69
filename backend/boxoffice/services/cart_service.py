"""
Cart manager: one active cart per user, any number of guest carts.

Totals are recomputed with a SQL SUM after every mutation so the stored
`total_amount` always equals the sum over live (not checked-out) items.
Concurrent first adds for the same user race on the partial unique index
`uq_active_cart_per_user`; the loser re-reads the winner's cart.
"""

from datetime import timedelta
from typing import Optional, Union

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.clock import Clock, as_utc
from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import (
    CartAlreadyActive,
    CartItemNotFound,
    CartNotFound,
    DiscountInvalid,
    EventNotFound,
)
from boxoffice.core.logging import get_logger, log_suppressed
from boxoffice.core.metrics import record_cart_operation
from boxoffice.core.money import ZERO, D, floor_money, round_money
from boxoffice.core.owner import Owner
from boxoffice.models.cart import Cart, CartItem
from boxoffice.models.discount import DiscountCode
from boxoffice.models.event import Event, EventPricingTier
from boxoffice.schemas.cart import CartItemCreate, CartLine, EventLine
from boxoffice.services.interfaces.reservations import SeatReservationClient

logger = get_logger(__name__)


def live_items():
    """Items that still belong to the cart (not yet checked out)."""
    return or_(CartItem.status.is_(None), CartItem.status != "checked_out")


def _missing_table(exc: Exception) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "sqlstate", None) == "42P01" or getattr(orig, "pgcode", None) == "42P01":
        return True
    message = str(orig or exc).lower()
    return "no such table" in message or "does not exist" in message


def item_view(item: CartItem, event: Optional[Event] = None) -> dict:
    title = event.title if event is not None else item.item_title
    return {
        "id": item.id,
        "item_type": item.item_type,
        "event_id": item.event_id,
        "item_ref_id": item.item_ref_id if item.item_type != "event" else item.event_id,
        "title": title,
        "quantity": item.quantity,
        "unit_price": D(item.unit_price),
        "total_price": D(item.total_price),
        "seat_numbers": item.seat_numbers,
        "ticket_type": item.ticket_type,
        "reservation_id": item.reservation_id,
        "external_details": item.external_details,
        "event_start_date": event.start_date if event is not None else None,
    }


def cart_view(cart: Cart, items: list) -> dict:
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "is_guest": cart.is_guest,
        "status": cart.status,
        "total_amount": D(cart.total_amount),
        "discount_code": cart.discount_code,
        "discount_percentage": D(cart.discount_percentage),
        "discount_amount": D(cart.discount_amount),
        "expires_at": cart.expires_at,
        "items": items,
    }


class CartService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        reservations: SeatReservationClient,
        cart_ttl_hours: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.reservations = reservations
        self.cart_ttl_hours = cart_ttl_hours or get_settings().CART_TTL_HOURS

    # --- lookup -----------------------------------------------------------

    async def find_active_cart(self, owner: Owner) -> Optional[Cart]:
        if owner.is_guest:
            result = await self.db.execute(
                select(Cart).where(Cart.id == owner.cart_id, Cart.is_guest.is_(True))
            )
            cart = result.scalar_one_or_none()
            if cart is None or cart.status != "active":
                return None
            if cart.expires_at is not None and as_utc(cart.expires_at) < self.clock.now():
                return None
            return cart

        result = await self.db.execute(
            select(Cart).where(Cart.user_id == owner.user_id, Cart.status == "active")
        )
        return result.scalar_one_or_none()

    async def require_active_cart(self, owner: Owner) -> Cart:
        cart = await self.find_active_cart(owner)
        if cart is None:
            raise CartNotFound()
        return cart

    async def _get_or_create_cart(self, owner: Owner) -> Cart:
        cart = await self.find_active_cart(owner)
        if cart is not None:
            return cart
        if owner.is_guest:
            # Guest carts are only made explicitly via create_guest_cart
            raise CartNotFound()

        now = self.clock.now()
        cart = Cart(
            user_id=owner.user_id,
            is_guest=False,
            status="active",
            total_amount=ZERO,
            created_at=now,
            expires_at=now + timedelta(hours=self.cart_ttl_hours),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(cart)
                await self.db.flush()
        except IntegrityError:
            logger.info("cart_create_race_lost", user_id=owner.user_id)
            existing = await self.find_active_cart(owner)
            if existing is None:
                raise CartAlreadyActive()
            return existing

        logger.info("cart_created", cart_id=cart.id, user_id=owner.user_id)
        return cart

    async def create_guest_cart(self) -> Cart:
        now = self.clock.now()
        cart = Cart(
            user_id=None,
            is_guest=True,
            status="active",
            total_amount=ZERO,
            created_at=now,
            expires_at=now + timedelta(hours=self.cart_ttl_hours),
        )
        self.db.add(cart)
        await self.db.flush()
        logger.info("guest_cart_created", cart_id=cart.id)
        return cart

    async def _live_item(self, cart: Cart, item_id: str) -> CartItem:
        result = await self.db.execute(
            select(CartItem).where(CartItem.id == item_id, CartItem.cart_id == cart.id, live_items())
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise CartItemNotFound()
        return item

    # --- totals -----------------------------------------------------------

    async def cart_total(self, cart_id: str):
        result = await self.db.execute(
            select(func.coalesce(func.sum(CartItem.total_price), 0)).where(
                CartItem.cart_id == cart_id, live_items()
            )
        )
        return round_money(result.scalar_one())

    async def refresh_total(self, cart: Cart):
        total = await self.cart_total(cart.id)
        cart.total_amount = total
        if cart.discount_code:
            cart.discount_amount = floor_money(total * D(cart.discount_percentage) / 100)
        else:
            cart.discount_amount = ZERO
        await self.db.flush()
        return total

    async def release_quietly(self, reservation_id: str, owner: Owner) -> None:
        """Best-effort release; a failure never blocks the cart mutation."""
        try:
            async with self.db.begin_nested():
                await self.reservations.release_reservation(reservation_id, owner)
        except Exception as e:
            log_suppressed(logger, "reservation_release_failed", e, reservation_id=reservation_id)

    # --- operations -------------------------------------------------------

    async def add_item(self, owner: Owner, payload: Union[CartItemCreate, CartLine]) -> dict:
        line = payload.to_line() if isinstance(payload, CartItemCreate) else payload

        event = None
        if isinstance(line, EventLine):
            result = await self.db.execute(
                select(Event).where(Event.id == line.event_id, Event.deleted_at.is_(None))
            )
            event = result.scalar_one_or_none()
            if event is None:
                raise EventNotFound(event_id=line.event_id)
            unit_price = line.price
            if unit_price is None:
                unit_price = await self._tier_price(event, line.ticket_type)
        else:
            unit_price = line.price if line.price is not None else ZERO
        unit_price = round_money(unit_price)

        cart = await self._get_or_create_cart(owner)

        control = None
        seat_numbers = None
        if isinstance(line, EventLine):
            seat_numbers = list(line.seat_numbers) or None
            if line.seat_ids:
                hold = await self.reservations.reserve_seats(event.id, line.seat_ids, owner)
                control = {"reservation_id": hold.reservation_id}
                seat_numbers = seat_numbers or hold.seat_labels or None

        item = CartItem(
            cart_id=cart.id,
            item_type=line.item_type,
            event_id=event.id if event is not None else None,
            item_ref_id=self._ref_id(line),
            item_title=None if event is not None else line.title,
            quantity=line.quantity,
            unit_price=unit_price,
            total_price=round_money(unit_price * line.quantity),
            seat_numbers=seat_numbers,
            ticket_type=getattr(line, "ticket_type", None) or "general",
            control=control,
            external_details=self._external_details(line),
            created_at=self.clock.now(),
        )
        self.db.add(item)
        await self.db.flush()

        total = await self.refresh_total(cart)
        record_cart_operation("add")
        logger.info(
            "cart_item_added",
            cart_id=cart.id,
            item_id=item.id,
            item_type=item.item_type,
            quantity=item.quantity,
            cart_total=str(total),
        )
        return {"cart_id": cart.id, "item": item_view(item, event), "cart_total": total}

    async def _tier_price(self, event: Event, ticket_type: str):
        result = await self.db.execute(
            select(EventPricingTier.price).where(
                EventPricingTier.event_id == event.id,
                EventPricingTier.name == ticket_type,
                EventPricingTier.deleted_at.is_(None),
            )
        )
        price = result.scalars().first()
        if price is not None:
            return price
        return event.base_price or ZERO

    @staticmethod
    def _ref_id(line: CartLine) -> Optional[str]:
        if line.item_type == "flight":
            return line.offer_id
        if line.item_type == "bus":
            return line.bus_id
        if line.item_type == "hotel":
            return line.hotel_code
        return None

    @staticmethod
    def _external_details(line: CartLine) -> Optional[dict]:
        details = dict(line.external_details or {})
        if line.item_type == "flight" and line.airline:
            details.setdefault("airline", line.airline)
        if line.item_type == "hotel":
            if line.check_in:
                details["check_in"] = line.check_in.isoformat()
            if line.check_out:
                details["check_out"] = line.check_out.isoformat()
        return details or None

    async def get_cart(self, owner: Owner) -> Optional[dict]:
        cart = await self.find_active_cart(owner)
        if cart is None:
            if owner.is_guest:
                raise CartNotFound()
            return None

        result = await self.db.execute(
            select(CartItem, Event)
            .outerjoin(Event, CartItem.event_id == Event.id)
            .where(CartItem.cart_id == cart.id, live_items())
            .order_by(CartItem.created_at, CartItem.id)
        )
        items = [item_view(item, event) for item, event in result.all()]
        return cart_view(cart, items)

    async def remove_item(self, owner: Owner, item_id: str) -> dict:
        cart = await self.require_active_cart(owner)
        item = await self._live_item(cart, item_id)

        if item.reservation_id:
            await self.release_quietly(item.reservation_id, owner)

        await self.db.delete(item)
        await self.db.flush()
        total = await self.refresh_total(cart)

        record_cart_operation("remove")
        logger.info("cart_item_removed", cart_id=cart.id, item_id=item_id, cart_total=str(total))
        return {"cart_id": cart.id, "cart_total": total}

    async def update_quantity(self, owner: Owner, item_id: str, quantity: int) -> dict:
        if quantity < 1:
            return await self.remove_item(owner, item_id)

        cart = await self.require_active_cart(owner)
        item = await self._live_item(cart, item_id)
        item.quantity = quantity
        item.total_price = round_money(D(item.unit_price) * quantity)
        await self.db.flush()
        total = await self.refresh_total(cart)

        record_cart_operation("update")
        logger.info("cart_item_updated", cart_id=cart.id, item_id=item_id, quantity=quantity)
        event = await self.db.get(Event, item.event_id) if item.event_id else None
        return {"cart_id": cart.id, "item": item_view(item, event), "cart_total": total}

    async def clear_cart(self, owner: Owner) -> dict:
        try:
            async with self.db.begin_nested():
                cart = await self.find_active_cart(owner)
                if cart is None:
                    if owner.is_guest:
                        raise CartNotFound()
                    return {"cart_id": None, "cart_total": ZERO}

                result = await self.db.execute(
                    select(CartItem).where(CartItem.cart_id == cart.id, live_items())
                )
                items = list(result.scalars().all())
        except (ProgrammingError, OperationalError) as e:
            if not _missing_table(e):
                raise
            logger.warning("cart_tables_missing", error=str(e))
            return {"cart_id": None, "cart_total": ZERO}

        for item in items:
            if item.reservation_id:
                await self.release_quietly(item.reservation_id, owner)

        await self.db.execute(
            delete(CartItem)
            .where(CartItem.cart_id == cart.id, live_items())
            .execution_options(synchronize_session=False)
        )
        cart.discount_code = None
        cart.discount_percentage = ZERO
        await self.refresh_total(cart)

        record_cart_operation("clear")
        logger.info("cart_cleared", cart_id=cart.id, items_removed=len(items))
        return {"cart_id": cart.id, "cart_total": ZERO}

    async def apply_discount(self, owner: Owner, code: str) -> dict:
        code = code.strip().upper()
        result = await self.db.execute(
            select(DiscountCode).where(DiscountCode.code == code, DiscountCode.is_active.is_(True))
        )
        discount = result.scalar_one_or_none()
        if discount is None or as_utc(discount.expires_at) < self.clock.now():
            raise DiscountInvalid(code=code)

        cart = await self.require_active_cart(owner)

        if discount.max_uses_per_user and owner.user_id is not None:
            used = await self.db.execute(
                select(func.count(Cart.id)).where(
                    Cart.user_id == owner.user_id,
                    Cart.discount_code == code,
                    Cart.id != cart.id,
                )
            )
            if used.scalar_one() >= discount.max_uses_per_user:
                raise DiscountInvalid("Discount code usage limit reached", code=code)

        cart.discount_code = code
        cart.discount_percentage = D(discount.discount_percentage)
        await self.refresh_total(cart)

        record_cart_operation("discount")
        logger.info(
            "cart_discount_applied",
            cart_id=cart.id,
            code=code,
            discount_amount=str(cart.discount_amount),
        )
        return await self.get_cart(owner)

    async def remove_discount(self, owner: Owner) -> dict:
        cart = await self.require_active_cart(owner)
        cart.discount_code = None
        cart.discount_percentage = ZERO
        await self.refresh_total(cart)
        logger.info("cart_discount_removed", cart_id=cart.id)
        return await self.get_cart(owner)
