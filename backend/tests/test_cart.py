"""
Tests for the signed-in cart: lines, totals, discounts and seat holds.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from boxoffice.models import Cart, CartItem, Seat, SeatReservation, User
from conftest import add_rows, auth_headers_for


async def add_event_line(client, headers, event_id, quantity=1, **extra):
    return await client.post(
        "/api/v1/cart/add",
        json={"itemType": "event", "eventId": event_id, "quantity": quantity, **extra},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_get_cart_without_cart(client: AsyncClient, auth_headers):
    """A user who never added anything sees an empty cart, not a 404."""
    response = await client.get("/api/v1/cart", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] is None
    assert data["items"] == []
    assert Decimal(data["totalAmount"]) == Decimal("0")


@pytest.mark.asyncio
async def test_cart_requires_auth(client: AsyncClient):
    """Unauthenticated cart access returns 401 with an error code."""
    response = await client.get("/api/v1/cart")
    assert response.status_code == 401
    assert response.json()["code"] == "Unauthorized"


@pytest.mark.asyncio
async def test_add_event_item_uses_tier_price(client: AsyncClient, auth_headers, concert):
    """Without an explicit price the line is priced from the ticket tier."""
    response = await add_event_line(client, auth_headers, concert.id, quantity=2)
    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["item"]["unitPrice"]) == Decimal("50.00")
    assert Decimal(data["item"]["totalPrice"]) == Decimal("100.00")
    assert Decimal(data["cartTotal"]) == Decimal("100.00")
    assert data["item"]["title"] == "Test Concert"


@pytest.mark.asyncio
async def test_cart_total_is_sum_of_lines(client: AsyncClient, auth_headers, concert):
    """Stored cart total equals the sum of live line totals after every mutation."""
    await add_event_line(client, auth_headers, concert.id, quantity=1)
    flight = await client.post(
        "/api/v1/cart/add",
        json={
            "itemType": "flight",
            "itemRefId": "OFFER-1",
            "itemTitle": "NBO to MBA",
            "price": "120.50",
            "metadata": {"airline": "KQ", "reservation_id": "forged"},
        },
        headers=auth_headers,
    )
    assert flight.status_code == 201
    assert flight.json()["item"]["reservationId"] is None
    assert flight.json()["item"]["externalDetails"] == {"airline": "KQ"}

    response = await client.get("/api/v1/cart", headers=auth_headers)
    data = response.json()
    assert len(data["items"]) == 2
    assert Decimal(data["totalAmount"]) == Decimal("170.50")
    assert sum(Decimal(i["totalPrice"]) for i in data["items"]) == Decimal(data["totalAmount"])


@pytest.mark.asyncio
async def test_non_event_item_requires_title(client: AsyncClient, auth_headers):
    """Non-event lines without a title are rejected as CartItemInvalid."""
    response = await client.post(
        "/api/v1/cart/add",
        json={"itemType": "hotel", "itemRefId": "HOTEL-9", "price": "80.00"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "CartItemInvalid"


@pytest.mark.asyncio
async def test_add_unknown_event(client: AsyncClient, auth_headers):
    """Adding a line for a missing event returns 404."""
    response = await add_event_line(client, auth_headers, "00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["code"] == "EventNotFound"


@pytest.mark.asyncio
async def test_update_quantity_and_zero_removes(client: AsyncClient, auth_headers, concert):
    """Quantity updates reprice the line; quantity zero removes it."""
    added = await add_event_line(client, auth_headers, concert.id, quantity=1)
    item_id = added.json()["item"]["id"]

    response = await client.put(f"/api/v1/cart/items/{item_id}", json={"quantity": 3}, headers=auth_headers)
    assert response.status_code == 200
    assert Decimal(response.json()["cartTotal"]) == Decimal("150.00")

    response = await client.put(f"/api/v1/cart/items/{item_id}", json={"quantity": 0}, headers=auth_headers)
    assert response.status_code == 200
    assert Decimal(response.json()["cartTotal"]) == Decimal("0")

    cart = (await client.get("/api/v1/cart", headers=auth_headers)).json()
    assert cart["items"] == []


@pytest.mark.asyncio
async def test_remove_missing_item(client: AsyncClient, auth_headers, concert):
    """Removing an item that is not in the cart returns 404."""
    await add_event_line(client, auth_headers, concert.id)
    response = await client.delete("/api/v1/cart/items/does-not-exist", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "CartItemNotFound"


@pytest.mark.asyncio
async def test_one_active_cart_per_user(client: AsyncClient, auth_headers, concert, customer, session_factory):
    """Repeated adds land in the same cart."""
    first = await add_event_line(client, auth_headers, concert.id)
    second = await add_event_line(client, auth_headers, concert.id)
    assert first.json()["cartId"] == second.json()["cartId"]

    async with session_factory() as session:
        carts = (await session.execute(select(Cart).where(Cart.user_id == customer.id))).scalars().all()
    assert len(carts) == 1


@pytest.mark.asyncio
async def test_carts_are_private(client: AsyncClient, auth_headers, concert, session_factory):
    """Another user cannot touch this user's items."""
    added = await add_event_line(client, auth_headers, concert.id)
    item_id = added.json()["item"]["id"]

    other = User(email="other@example.com")
    await add_rows(session_factory, other)
    response = await client.delete(f"/api/v1/cart/items/{item_id}", headers=auth_headers_for(other.id))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_discount_is_floored(client: AsyncClient, auth_headers, concert, discount_code):
    """Discount amount is floor(total * pct / 100) and follows later changes."""
    await client.post(
        "/api/v1/cart/add",
        json={"itemType": "event", "eventId": concert.id, "quantity": 1, "price": "33.33"},
        headers=auth_headers,
    )
    response = await client.post("/api/v1/cart/discount", json={"code": "save15"}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["discountCode"] == "SAVE15"
    assert Decimal(data["discountAmount"]) == Decimal("4")

    response = await client.delete("/api/v1/cart/discount", headers=auth_headers)
    assert Decimal(response.json()["discountAmount"]) == Decimal("0")


@pytest.mark.asyncio
async def test_unknown_discount(client: AsyncClient, auth_headers, concert):
    """Unknown codes are rejected with DiscountInvalid."""
    await add_event_line(client, auth_headers, concert.id)
    response = await client.post("/api/v1/cart/discount", json={"code": "NOPE"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "DiscountInvalid"


@pytest.mark.asyncio
async def test_seat_hold_kept_on_line(client: AsyncClient, auth_headers, concert, seats, session_factory):
    """Event lines naming seats hold them and record the hold on the line."""
    seat_ids = [seats[0].id, seats[1].id]
    response = await add_event_line(client, auth_headers, concert.id, quantity=2, seatIds=seat_ids)
    assert response.status_code == 201
    item = response.json()["item"]
    assert item["reservationId"]
    assert item["seatNumbers"] == ["A1", "A2"]

    async with session_factory() as session:
        statuses = (await session.execute(select(Seat.status).where(Seat.id.in_(seat_ids)))).scalars().all()
        reservation = await session.get(SeatReservation, item["reservationId"])
        stored = await session.get(CartItem, item["id"])
    assert set(statuses) == {"reserved"}
    assert reservation.status == "held"
    assert stored.control == {"reservation_id": item["reservationId"]}
    assert stored.external_details is None


@pytest.mark.asyncio
async def test_removing_line_releases_seats(client: AsyncClient, auth_headers, concert, seats, session_factory):
    """Removing a line with a hold puts its seats back on sale."""
    added = await add_event_line(client, auth_headers, concert.id, seatIds=[seats[0].id])
    item = added.json()["item"]

    response = await client.delete(f"/api/v1/cart/items/{item['id']}", headers=auth_headers)
    assert response.status_code == 200

    async with session_factory() as session:
        seat = await session.get(Seat, seats[0].id)
        reservation = await session.get(SeatReservation, item["reservationId"])
    assert seat.status == "available"
    assert reservation.status == "released"


@pytest.mark.asyncio
async def test_clear_cart(client: AsyncClient, auth_headers, concert, seats, session_factory):
    """Clearing empties the cart, resets the total and releases holds."""
    await add_event_line(client, auth_headers, concert.id, seatIds=[seats[2].id])
    await add_event_line(client, auth_headers, concert.id, quantity=2)

    response = await client.delete("/api/v1/cart", headers=auth_headers)
    assert response.status_code == 200
    assert Decimal(response.json()["cartTotal"]) == Decimal("0")

    async with session_factory() as session:
        seat = await session.get(Seat, seats[2].id)
    assert seat.status == "available"


@pytest.mark.asyncio
async def test_clear_cart_without_cart(client: AsyncClient, auth_headers):
    """Clearing when there is no cart is a no-op."""
    response = await client.delete("/api/v1/cart", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["cartId"] is None
