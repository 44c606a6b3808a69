"""
Pydantic schemas for the guest (no account) checkout surface.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import EmailStr, Field

from boxoffice.schemas.checkout import GuestInfo, TicketResponse
from boxoffice.schemas.common import APIModel


class GuestCheckoutInitiate(APIModel):
    cart_id: str
    guest_info: GuestInfo
    payment_method: str = Field("stripe", min_length=1, max_length=30)
    billing_info: Optional[dict[str, Any]] = None


class GuestCheckoutComplete(APIModel):
    cart_id: str
    billing_address: dict[str, Any] = {}
    payment_id: Optional[str] = Field(None, max_length=64)
    checkout_id: Optional[str] = None


class GuestRegister(APIModel):
    email: EmailStr
    confirmation_code: str = Field(..., min_length=1, max_length=12)
    password: str = Field(..., min_length=8, max_length=128)
    password_confirm: Optional[str] = None


class ResendLink(APIModel):
    email: EmailStr


class GuestTicket(TicketResponse):
    event_title: Optional[str] = None
    event_date: Optional[datetime] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    venue_city: Optional[str] = None


class GuestTicketsResponse(APIModel):
    order_id: str
    confirmation_code: Optional[str] = None
    guest_name: str
    guest_email: Optional[str] = None
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    order_date: Optional[datetime] = None
    status: str
    ticket_count: int
    tickets: list[GuestTicket] = []


class GuestOrderSummary(APIModel):
    id: str
    confirmation_code: Optional[str] = None
    total_amount: Decimal
    status: str
    created_at: Optional[datetime] = None
    ticket_count: int


class GuestAccountCreated(APIModel):
    user_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    orders_linked: int
    message: str = "Account created successfully. All previous orders linked to your account."


class MessageResponse(APIModel):
    message: str
