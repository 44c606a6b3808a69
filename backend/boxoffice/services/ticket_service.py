"""
Ticket issuance: numbering and digital entry payloads.

Ticket numbers are `<PREFIX>-<last 8 digits of epoch ms>-<8 hex upper>`,
PREFIX being TKT for event tickets and BUS/FLIGHT/HOTEL for universal
display tickets. Digital payloads are compact JSON documents; when
TICKET_SIGNING_KEY is configured they carry an HMAC-SHA256 signature over
their canonical form so gate scanners can reject tampered codes.
"""

import hashlib
import hmac
import json
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.clock import Clock, as_utc
from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.core.money import D
from boxoffice.models.cart import CartItem
from boxoffice.models.event import Event
from boxoffice.models.order import Order
from boxoffice.models.ticket import Ticket

logger = get_logger(__name__)

DIGITAL_FORMATS = ("qr_code", "nfc", "rfid", "barcode")
UNIVERSAL_VALIDITY = timedelta(days=365)
EVENT_GRACE = timedelta(hours=24)
MAX_NUMBER_ATTEMPTS = 5


def make_ticket_number(prefix: str, now: datetime) -> str:
    millis = str(int(now.timestamp() * 1000))[-8:]
    return f"{prefix}-{millis}-{secrets.token_hex(4).upper()}"


def barcode_checksum(ticket_number: str) -> str:
    return hashlib.sha256(ticket_number.encode("utf-8")).hexdigest()[:4].upper()


def _canonical(payload: dict) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def sign_payload(payload: dict, key: Optional[str]) -> str:
    """Serialize a payload, adding `signature` when a key is configured."""
    document = dict(payload)
    if key:
        document["signature"] = hmac.new(key.encode("utf-8"), _canonical(payload), hashlib.sha256).hexdigest()
    return json.dumps(document, separators=(",", ":"), default=str)


def verify_payload(data: str, key: Optional[str]) -> bool:
    """True when the payload parses and (with a key) its signature matches."""
    try:
        document = json.loads(data)
    except (TypeError, ValueError):
        return False
    if not isinstance(document, dict):
        return False
    if not key:
        return True
    signature = document.pop("signature", None)
    if not signature:
        return False
    expected = hmac.new(key.encode("utf-8"), _canonical(document), hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected)


class TicketIssuer:
    def __init__(self, db: AsyncSession, clock: Clock, signing_key: Optional[str] = None):
        self.db = db
        self.clock = clock
        self.signing_key = signing_key if signing_key is not None else get_settings().TICKET_SIGNING_KEY

    async def next_number(self, prefix: str = "TKT") -> str:
        for _ in range(MAX_NUMBER_ATTEMPTS):
            number = make_ticket_number(prefix, self.clock.now())
            exists = await self.db.execute(select(Ticket.id).where(Ticket.ticket_number == number))
            if exists.scalar_one_or_none() is None:
                return number
        # The unique index is the last line of defence
        return make_ticket_number(prefix, self.clock.now())

    def digital_payload(
        self,
        digital_format: str,
        ticket_number: str,
        event_id: Optional[str],
        holder: Optional[str],
        seat_number: Optional[str] = None,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
    ) -> dict:
        """Column values for the requested digital format."""
        if digital_format not in DIGITAL_FORMATS:
            digital_format = "qr_code"

        payload = {
            "format": digital_format,
            "ticketNumber": ticket_number,
            "eventId": event_id,
            "userId": holder,
            "timestamp": int(self.clock.now().timestamp() * 1000),
            "nonce": secrets.token_hex(8),
        }
        if digital_format == "nfc":
            payload["seatInfo"] = seat_number
            payload["validity"] = {
                "startDate": valid_from.isoformat() if valid_from else None,
                "endDate": valid_until.isoformat() if valid_until else None,
            }
        elif digital_format == "barcode":
            payload["code"] = ticket_number + barcode_checksum(ticket_number)

        column = {
            "qr_code": "qr_code_data",
            "nfc": "nfc_data",
            "rfid": "rfid_data",
            "barcode": "barcode_data",
        }[digital_format]
        return {"digital_format": digital_format, column: sign_payload(payload, self.signing_key)}

    async def issue_event_ticket(
        self,
        order: Order,
        item: CartItem,
        event: Event,
        seat_number: Optional[str],
        status: str,
        digital_format: str = "qr_code",
    ) -> Ticket:
        ticket_number = await self.next_number("TKT")
        valid_from = as_utc(event.start_date)
        valid_until = as_utc(event.end_date or event.start_date) + EVENT_GRACE
        holder = order.user_id or order.guest_email

        ticket = Ticket(
            ticket_number=ticket_number,
            order_id=order.id,
            user_id=order.user_id,
            item_type="event",
            event_id=event.id,
            item_title=event.title,
            ticket_type=item.ticket_type,
            seat_number=seat_number,
            price=D(item.unit_price),
            quantity=1,
            status=status,
            valid_from=valid_from,
            valid_until=valid_until,
            created_at=self.clock.now(),
            **self.digital_payload(
                digital_format, ticket_number, event.id, holder, seat_number, valid_from, valid_until
            ),
        )
        self.db.add(ticket)
        await self.db.flush()
        return ticket

    async def issue_universal_ticket(
        self,
        order: Order,
        item: CartItem,
        status: str,
        details: Optional[dict] = None,
    ) -> Ticket:
        """Display-only ticket for flight, bus and hotel bookings."""
        prefix = item.item_type.upper()
        ticket_number = await self.next_number(prefix)
        now = self.clock.now()
        holder = order.user_id or order.guest_email

        ticket = Ticket(
            ticket_number=ticket_number,
            order_id=order.id,
            user_id=order.user_id,
            item_type=item.item_type,
            event_id=None,
            item_ref_id=item.item_ref_id,
            item_title=item.item_title,
            ticket_type=item.item_type,
            price=D(item.total_price),
            quantity=item.quantity,
            status=status,
            valid_from=now,
            valid_until=now + UNIVERSAL_VALIDITY,
            details={
                "item_type": item.item_type,
                "item_id": item.item_ref_id,
                "item_title": item.item_title,
                "quantity": item.quantity,
                **(details or {}),
            },
            created_at=now,
            **self.digital_payload("qr_code", ticket_number, None, holder),
        )
        self.db.add(ticket)
        await self.db.flush()
        return ticket
