"""
Tests for ticket numbering, signed payloads, calendar invites and the
notification queue.
"""

import json
import re
from datetime import datetime, timedelta, timezone

import pytest

from boxoffice.core.clock import Clock
from boxoffice.services.notification_service import NotificationDispatcher, build_ics
from boxoffice.services.ticket_service import TicketIssuer, make_ticket_number, sign_payload, verify_payload

TICKET_NUMBER = re.compile(r"^TKT-\d{1,8}-[0-9A-F]{8}$")


def test_ticket_number_format():
    """Numbers carry the prefix, the epoch-millisecond tail and an upper-case hex suffix."""
    number = make_ticket_number("TKT", datetime(2026, 3, 1, tzinfo=timezone.utc))
    assert TICKET_NUMBER.match(number)
    assert make_ticket_number("BUS", datetime.now(timezone.utc)).startswith("BUS-")


def test_signed_payload_round_trip():
    """A signed payload verifies with its key and fails once altered."""
    data = sign_payload({"ticketNumber": "TKT-1-ABCDEF01", "eventId": "e1"}, "secret")
    assert verify_payload(data, "secret")
    assert not verify_payload(data, "other-secret")

    tampered = json.loads(data)
    tampered["eventId"] = "e2"
    assert not verify_payload(json.dumps(tampered), "secret")


def test_unsigned_payload():
    """Without a key payloads are plain JSON and carry no signature."""
    data = sign_payload({"ticketNumber": "TKT-1-ABCDEF01"}, None)
    assert "signature" not in json.loads(data)
    assert verify_payload(data, None)
    assert not verify_payload("not json", None)


def test_digital_formats():
    """Each digital format fills its own column; unknown formats fall back to QR."""
    issuer = TicketIssuer(db=None, clock=Clock(), signing_key="k")

    nfc = issuer.digital_payload("nfc", "TKT-1-AAAAAAAA", "e1", "u1", seat_number="A1")
    assert nfc["digital_format"] == "nfc"
    assert json.loads(nfc["nfc_data"])["seatInfo"] == "A1"

    barcode = issuer.digital_payload("barcode", "TKT-1-AAAAAAAA", "e1", "u1")
    assert json.loads(barcode["barcode_data"])["code"].startswith("TKT-1-AAAAAAAA")

    fallback = issuer.digital_payload("hologram", "TKT-1-AAAAAAAA", "e1", "u1")
    assert fallback["digital_format"] == "qr_code"
    assert verify_payload(fallback["qr_code_data"], "k")


def test_ics_invite():
    """Invites carry a stable UID and reminders a day and an hour before."""
    start = datetime(2026, 12, 24, 18, 0, tzinfo=timezone.utc)
    ics = build_ics("order-1", "event-1", "Carols; live", start, start + timedelta(hours=2), location="Arena, Nairobi")

    assert ics.startswith("BEGIN:VCALENDAR\r\n")
    assert "UID:order-1-event-1@boxoffice" in ics
    assert "DTSTART:20261224T180000Z" in ics
    assert "DTEND:20261224T200000Z" in ics
    assert r"SUMMARY:Carols\; live" in ics
    assert r"LOCATION:Arena\, Nairobi" in ics
    assert ics.count("BEGIN:VALARM") == 2
    assert "TRIGGER:-PT24H" in ics and "TRIGGER:-PT1H" in ics


@pytest.mark.asyncio
async def test_dispatcher_drops_when_full():
    """A full queue drops new jobs instead of blocking."""
    dispatcher = NotificationDispatcher(maxsize=1)
    ran = []

    async def job():
        ran.append(True)

    assert dispatcher.submit("email", job) is True
    assert dispatcher.submit("email", job) is False
    assert await dispatcher.drain() == 1
    assert ran == [True]


@pytest.mark.asyncio
async def test_dispatcher_swallows_job_failures():
    """A failing job is logged and the next one still runs."""
    dispatcher = NotificationDispatcher(maxsize=10)
    ran = []

    async def broken():
        raise RuntimeError("smtp down")

    async def fine():
        ran.append("fine")

    dispatcher.submit("email", broken)
    dispatcher.submit("audit", fine)
    assert await dispatcher.drain() == 2
    assert ran == ["fine"]
