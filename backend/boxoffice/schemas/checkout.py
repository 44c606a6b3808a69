"""
Pydantic schemas for checkout and order request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field

from boxoffice.schemas.common import APIModel


class GuestInfo(APIModel):
    email: str = Field(..., max_length=255)
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)
    phone: str = Field("", max_length=32)


class CheckoutInitiate(APIModel):
    payment_method: str = Field("stripe", min_length=1, max_length=30)
    billing_info: Optional[dict[str, Any]] = None


class CheckoutComplete(APIModel):
    checkout_id: str
    payment_id: str = Field(..., min_length=1, max_length=64)


class BalancePayment(APIModel):
    payment_id: str = Field(..., min_length=1, max_length=64)


class CheckoutResponse(APIModel):
    checkout_id: str
    cart_id: str
    status: str
    payment_method: str
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    expires_at: datetime
    is_guest: bool = False
    guest_email: Optional[str] = None
    confirmation_code: Optional[str] = None
    order_id: Optional[str] = None


class CheckoutCompleted(APIModel):
    order_id: str
    checkout_id: str
    confirmation_code: Optional[str] = None
    tickets_created: int
    bookings_created: int
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    is_fully_paid: bool
    status: str
    replayed: bool = False


class TicketResponse(APIModel):
    id: str
    ticket_number: str
    item_type: str
    event_id: Optional[str] = None
    item_ref_id: Optional[str] = None
    item_title: Optional[str] = None
    ticket_type: Optional[str] = None
    seat_number: Optional[str] = None
    price: Decimal
    quantity: int
    status: str
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    digital_format: Optional[str] = None
    qr_code_data: Optional[str] = None
    nfc_data: Optional[str] = None
    rfid_data: Optional[str] = None
    barcode_data: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class OrderResponse(APIModel):
    id: str
    user_id: Optional[str] = None
    is_guest: bool
    guest_email: Optional[str] = None
    confirmation_code: Optional[str] = None
    checkout_id: str
    payment_id: Optional[str] = None
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    is_fully_paid: bool
    status: str
    reservation_ids: list[str] = []
    created_at: Optional[datetime] = None
    ticket_count: int = 0
    tickets: Optional[list[TicketResponse]] = None
