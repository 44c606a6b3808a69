"""
Tests for guest checkout, ticket retrieval and account conversion.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from boxoffice.models import Cart, Order, Seat, SeatReservation, Ticket, User
from boxoffice.services.notification_service import Notifier
from boxoffice.services.sweeper import sweep_once
from conftest import KENYAN_PHONE, add_rows

GUEST = {"email": "Guest@Example.com", "firstName": "Grace", "lastName": "Guest", "phone": KENYAN_PHONE}


async def guest_cart(client, event_id, quantity=1, **extra) -> str:
    created = await client.post("/api/v1/guest/cart/create")
    assert created.status_code == 201
    cart_id = created.json()["cartId"]
    added = await client.post(
        f"/api/v1/guest/cart/{cart_id}/add",
        json={"itemType": "event", "eventId": event_id, "quantity": quantity, **extra},
    )
    assert added.status_code == 201
    return cart_id


async def guest_purchase(client, event_id, quantity=1, guest=None) -> dict:
    cart_id = await guest_cart(client, event_id, quantity)
    initiated = await client.post(
        "/api/v1/guest/checkout/initiate",
        json={"cartId": cart_id, "guestInfo": guest or GUEST},
    )
    assert initiated.status_code == 201
    completed = await client.post("/api/v1/guest/checkout/complete", json={"cartId": cart_id})
    assert completed.status_code == 200
    return completed.json()


@pytest.mark.asyncio
async def test_guest_cart_lifecycle(client: AsyncClient, concert):
    """Guest carts are addressed by id and support add, read, remove and clear."""
    cart_id = await guest_cart(client, concert.id, quantity=2)

    cart = (await client.get(f"/api/v1/guest/cart/{cart_id}")).json()
    assert cart["isGuest"] is True
    assert Decimal(cart["totalAmount"]) == Decimal("100.00")
    item_id = cart["items"][0]["id"]

    removed = await client.delete(f"/api/v1/guest/cart/{cart_id}/items/{item_id}")
    assert removed.status_code == 200
    assert Decimal(removed.json()["cartTotal"]) == Decimal("0")

    cleared = await client.delete(f"/api/v1/guest/cart/{cart_id}")
    assert cleared.status_code == 200


@pytest.mark.asyncio
async def test_guest_routes_reject_user_carts(client: AsyncClient, auth_headers, concert):
    """A signed-in user's cart is not reachable through the guest routes."""
    added = await client.post(
        "/api/v1/cart/add", json={"itemType": "event", "eventId": concert.id}, headers=auth_headers
    )
    cart_id = added.json()["cartId"]

    response = await client.get(f"/api/v1/guest/cart/{cart_id}")
    assert response.status_code == 404
    assert response.json()["code"] == "CartNotFound"


@pytest.mark.asyncio
async def test_guest_checkout_and_ticket_lookup(client: AsyncClient, concert, session_factory):
    """A guest order is retrievable by email and confirmation code, in any case."""
    completed = await guest_purchase(client, concert.id, quantity=2)
    code = completed["confirmationCode"]
    assert code and code == code.upper()
    assert completed["status"] == "confirmed"

    response = await client.get("/api/v1/guest/tickets", params={"email": "GUEST@example.com", "code": code.lower()})
    assert response.status_code == 200
    data = response.json()
    assert data["orderId"] == completed["orderId"]
    assert data["guestEmail"] == "guest@example.com"
    assert data["guestName"] == "Grace Guest"
    assert data["ticketCount"] == 2
    assert data["tickets"][0]["eventTitle"] == "Test Concert"
    assert data["tickets"][0]["venueName"] == "Arena"
    assert data["tickets"][0]["venueCity"] == "Nairobi"

    async with session_factory() as session:
        order = await session.get(Order, completed["orderId"])
    assert order.is_guest is True
    assert order.user_id is None
    assert order.guest_phone == KENYAN_PHONE


@pytest.mark.asyncio
async def test_guest_lookup_wrong_code(client: AsyncClient, concert):
    """A wrong code does not reveal the order."""
    await guest_purchase(client, concert.id)
    response = await client.get("/api/v1/guest/tickets", params={"email": "guest@example.com", "code": "WRONG"})
    assert response.status_code == 404
    assert response.json()["code"] == "OrderNotFound"


@pytest.mark.asyncio
async def test_guest_complete_without_initiate(client: AsyncClient, concert):
    """Completing straight from the cart opens the checkout from the billing address."""
    cart_id = await guest_cart(client, concert.id)
    response = await client.post(
        "/api/v1/guest/checkout/complete",
        json={"cartId": cart_id, "billingAddress": {**GUEST, "email": "walkin@example.com"}},
    )
    assert response.status_code == 200
    assert response.json()["ticketsCreated"] == 1

    replay = await client.post("/api/v1/guest/checkout/complete", json={"cartId": cart_id})
    assert replay.status_code == 200
    assert replay.json()["replayed"] is True
    assert replay.json()["orderId"] == response.json()["orderId"]


@pytest.mark.asyncio
async def test_guest_checkout_with_payment(client: AsyncClient, concert, make_payment):
    """A guest naming a payment goes through the same payment checks."""
    cart_id = await guest_cart(client, concert.id, quantity=2)
    await client.post("/api/v1/guest/checkout/initiate", json={"cartId": cart_id, "guestInfo": GUEST})
    payment_id = await make_payment("20.00")

    response = await client.post(
        "/api/v1/guest/checkout/complete", json={"cartId": cart_id, "paymentId": payment_id}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "partially_paid"
    assert Decimal(response.json()["balanceDue"]) == Decimal("80.00")


@pytest.mark.asyncio
async def test_guest_invalid_phone(client: AsyncClient, concert):
    """Guest phone numbers must match the configured pattern."""
    cart_id = await guest_cart(client, concert.id)
    response = await client.post(
        "/api/v1/guest/checkout/initiate",
        json={"cartId": cart_id, "guestInfo": {**GUEST, "phone": "12345"}},
    )
    assert response.status_code == 400
    assert response.json()["details"]["field"] == "phone"


@pytest.mark.asyncio
async def test_confirmation_code_reused_per_email(client: AsyncClient, concert):
    """Later orders from the same guest email keep the first confirmation code."""
    first = await guest_purchase(client, concert.id)
    second = await guest_purchase(client, concert.id)
    assert second["confirmationCode"] == first["confirmationCode"]

    history = await client.get(
        "/api/v1/guest/orders", params={"email": "guest@example.com", "code": first["confirmationCode"]}
    )
    assert history.status_code == 200
    assert {o["id"] for o in history.json()} == {first["orderId"], second["orderId"]}


@pytest.mark.asyncio
async def test_resend_link_does_not_disclose(client: AsyncClient, concert, dispatcher, email_client):
    """The response is identical for known and unknown addresses; only known ones get mail."""
    completed = await guest_purchase(client, concert.id)
    await dispatcher.drain()
    email_client.sent.clear()

    known = await client.post("/api/v1/guest/resend-link", json={"email": "guest@example.com"})
    unknown = await client.post("/api/v1/guest/resend-link", json={"email": "nobody@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()

    await dispatcher.drain()
    assert [m.to for m in email_client.sent] == ["guest@example.com"]
    assert completed["confirmationCode"] in email_client.sent[0].text


@pytest.mark.asyncio
async def test_convert_guest_to_account(client: AsyncClient, concert, session_factory):
    """Registering links every order and ticket placed with the guest email; repeating it conflicts."""
    first = await guest_purchase(client, concert.id)
    second = await guest_purchase(client, concert.id)

    response = await client.post(
        "/api/v1/guest/register",
        json={
            "email": "guest@example.com",
            "confirmationCode": first["confirmationCode"],
            "password": "correct-horse",
            "passwordConfirm": "correct-horse",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["ordersLinked"] == 2
    assert data["firstName"] == "Grace"

    async with session_factory() as session:
        user = await session.get(User, data["userId"])
        orders = (
            await session.execute(select(Order).where(Order.id.in_([first["orderId"], second["orderId"]])))
        ).scalars().all()
        ticket_owners = (await session.execute(select(Ticket.user_id))).scalars().all()
    assert user.is_email_verified is True
    assert user.hashed_password and user.hashed_password != "correct-horse"
    assert all(o.user_id == user.id and o.is_guest is False for o in orders)
    assert set(ticket_owners) == {user.id}

    again = await client.post(
        "/api/v1/guest/register",
        json={"email": "guest@example.com", "confirmationCode": first["confirmationCode"], "password": "correct-horse"},
    )
    assert again.status_code == 409
    assert again.json()["code"] == "AccountAlreadyExists"

    unknown = await client.post(
        "/api/v1/guest/register",
        json={"email": "guest@example.com", "confirmationCode": "NOPE1234", "password": "correct-horse"},
    )
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_convert_when_account_exists(client: AsyncClient, concert, session_factory):
    """Conversion refuses an email that already has an account."""
    completed = await guest_purchase(client, concert.id)
    await add_rows(session_factory, User(email="guest@example.com"))

    response = await client.post(
        "/api/v1/guest/register",
        json={"email": "guest@example.com", "confirmationCode": completed["confirmationCode"], "password": "correct-horse"},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "AccountAlreadyExists"


@pytest.mark.asyncio
async def test_convert_password_mismatch(client: AsyncClient, concert):
    """Password confirmation must match."""
    completed = await guest_purchase(client, concert.id)
    response = await client.post(
        "/api/v1/guest/register",
        json={
            "email": "guest@example.com",
            "confirmationCode": completed["confirmationCode"],
            "password": "correct-horse",
            "passwordConfirm": "battery-staple",
        },
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_sweep_expires_guest_carts_and_holds(
    client: AsyncClient, concert, seats, clock, session_factory, dispatcher, email_client
):
    """Abandoned guest carts expire and their seats go back on sale."""
    cart_id = await guest_cart(client, concert.id, seatIds=[seats[0].id])

    clock.advance(hours=25)
    notifier = Notifier(dispatcher, email_client, session_factory)
    counts = await sweep_once(session_factory, clock, notifier)
    assert counts["guest_carts"] == 1

    async with session_factory() as session:
        cart = await session.get(Cart, cart_id)
        seat = await session.get(Seat, seats[0].id)
        reservations = (await session.execute(select(SeatReservation.status))).scalars().all()
    assert cart.status == "expired"
    assert seat.status == "available"
    assert reservations == ["released"]

    response = await client.get(f"/api/v1/guest/cart/{cart_id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_sweep_archives_old_guest_orders(client: AsyncClient, concert, clock, session_factory, dispatcher, email_client):
    """Guest orders past the retention window are archived."""
    completed = await guest_purchase(client, concert.id)

    clock.advance(days=91)
    counts = await sweep_once(session_factory, clock, Notifier(dispatcher, email_client, session_factory))
    assert counts["guest_orders"] == 1

    async with session_factory() as session:
        order = await session.get(Order, completed["orderId"])
    assert order.status == "archived"
