"""
Pydantic schemas for cart request/response validation.

Cart lines arrive as one flat payload (the storefront sends the same shape
for every item type) and are narrowed into a tagged variant before they
reach the cart service.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, TypeAdapter

from boxoffice.core.exceptions import CartItemInvalid
from boxoffice.schemas.common import APIModel


class _Line(BaseModel):
    quantity: int = Field(1, ge=1, le=100)
    price: Optional[Decimal] = Field(None, ge=0)
    external_details: Optional[dict[str, Any]] = None


class EventLine(_Line):
    item_type: Literal["event"] = "event"
    event_id: str
    seat_ids: list[str] = []
    seat_numbers: list[str] = []
    ticket_type: str = "general"


class FlightLine(_Line):
    item_type: Literal["flight"]
    offer_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    airline: Optional[str] = None


class BusLine(_Line):
    item_type: Literal["bus"]
    bus_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)


class HotelLine(_Line):
    item_type: Literal["hotel"]
    hotel_code: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    check_in: Optional[date] = None
    check_out: Optional[date] = None


CartLine = Annotated[Union[EventLine, FlightLine, BusLine, HotelLine], Field(discriminator="item_type")]

_line_adapter = TypeAdapter(CartLine)

REF_FIELDS = {"flight": "offer_id", "bus": "bus_id", "hotel": "hotel_code"}


def _first(details: dict, *keys):
    for key in keys:
        if details.get(key) is not None:
            return details[key]
    return None


class CartItemCreate(APIModel):
    item_type: Literal["event", "flight", "bus", "hotel"] = "event"
    event_id: Optional[str] = None
    item_ref_id: Optional[str] = None
    item_title: Optional[str] = None
    seat_ids: list[str] = []
    seat_numbers: list[str] = []
    ticket_type: str = "general"
    quantity: int = Field(1, ge=1, le=100)
    price: Optional[Decimal] = Field(None, ge=0)
    metadata: Optional[dict[str, Any]] = None

    def to_line(self) -> CartLine:
        """Narrow the flat payload into its variant, or raise CartItemInvalid."""
        details = dict(self.metadata or {})
        # Internal bookkeeping never comes from the client
        details.pop("reservation_id", None)

        data: dict[str, Any] = {
            "item_type": self.item_type,
            "quantity": self.quantity,
            "price": self.price,
            "external_details": details or None,
        }
        if self.item_type == "event":
            if not self.event_id:
                raise CartItemInvalid("event_id is required for event items", field="event_id")
            data.update(
                event_id=self.event_id,
                seat_ids=self.seat_ids,
                seat_numbers=self.seat_numbers,
                ticket_type=self.ticket_type,
            )
        else:
            if not self.item_ref_id:
                raise CartItemInvalid("item_ref_id is required for non-event items", field="item_ref_id")
            if not self.item_title:
                raise CartItemInvalid("item_title is required for non-event items", field="item_title")
            data[REF_FIELDS[self.item_type]] = self.item_ref_id
            data["title"] = self.item_title
            if self.item_type == "flight":
                data["airline"] = _first(details, "airline")
            elif self.item_type == "hotel":
                data["check_in"] = _first(details, "check_in", "checkIn", "check_in_date")
                data["check_out"] = _first(details, "check_out", "checkOut", "check_out_date")

        try:
            return _line_adapter.validate_python(data)
        except ValidationError as e:
            raise CartItemInvalid(errors=e.errors(include_url=False, include_context=False))


class QuantityUpdate(APIModel):
    quantity: int = Field(..., ge=0, le=100)


class DiscountApply(APIModel):
    code: str = Field(..., min_length=1, max_length=50)


class CartItemResponse(APIModel):
    id: str
    item_type: str
    event_id: Optional[str] = None
    item_ref_id: Optional[str] = None
    title: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    seat_numbers: Optional[list[str]] = None
    ticket_type: Optional[str] = None
    reservation_id: Optional[str] = None
    external_details: Optional[dict[str, Any]] = None
    event_start_date: Optional[datetime] = None


class CartResponse(APIModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    is_guest: bool = False
    status: str = "empty"
    total_amount: Decimal = Decimal("0")
    discount_code: Optional[str] = None
    discount_percentage: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    expires_at: Optional[datetime] = None
    items: list[CartItemResponse] = []


class CartItemAdded(APIModel):
    cart_id: str
    item: CartItemResponse
    cart_total: Decimal


class CartTotal(APIModel):
    cart_id: Optional[str] = None
    cart_total: Decimal


class GuestCartCreated(APIModel):
    cart_id: str
    is_guest: bool = True
    expires_at: datetime
