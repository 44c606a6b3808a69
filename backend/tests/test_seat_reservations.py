"""
Tests for the seat reservation manager.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from boxoffice.core.exceptions import SeatsUnavailable
from boxoffice.core.owner import Owner
from boxoffice.models import Seat, SeatReservation
from boxoffice.services.seat_service import SeatReservationService


async def seat_statuses(session, seats) -> list:
    result = await session.execute(
        select(Seat.status).where(Seat.id.in_([s.id for s in seats])).order_by(Seat.seat_number)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_reserve_is_all_or_nothing(session_factory, seats, concert, clock):
    """When one requested seat is taken none of the others stay held."""
    alice, bob = Owner.user("alice"), Owner.user("bob")

    async with session_factory() as session:
        service = SeatReservationService(session, clock, hold_minutes=15)
        await service.reserve_seats(concert.id, [seats[1].id], alice)
        await session.commit()

    async with session_factory() as session:
        service = SeatReservationService(session, clock, hold_minutes=15)
        with pytest.raises(SeatsUnavailable):
            await service.reserve_seats(concert.id, [seats[0].id, seats[1].id, seats[2].id], bob)
        await session.commit()

    async with session_factory() as session:
        assert await seat_statuses(session, seats) == ["available", "reserved", "available", "available"]
        holds = (await session.execute(select(SeatReservation))).scalars().all()
    assert [h.owner_ref for h in holds] == ["user:alice"]


@pytest.mark.asyncio
async def test_reserve_wrong_event(session_factory, seats, nearly_sold_out, clock):
    """Seats of another event cannot be held."""
    async with session_factory() as session:
        service = SeatReservationService(session, clock)
        with pytest.raises(SeatsUnavailable):
            await service.reserve_seats(nearly_sold_out.id, [seats[0].id], Owner.user("alice"))


@pytest.mark.asyncio
async def test_release_requires_owner_and_is_idempotent(session_factory, seats, concert, clock):
    """Only the holder releases; a second release is a no-op."""
    owner = Owner.guest("cart-1")
    async with session_factory() as session:
        service = SeatReservationService(session, clock)
        hold = await service.reserve_seats(concert.id, [seats[0].id], owner)

        assert await service.release_reservation(hold.reservation_id, Owner.guest("cart-2")) is False
        assert await service.release_reservation(hold.reservation_id, owner) is True
        assert await service.release_reservation(hold.reservation_id, owner) is False
        await session.commit()

    async with session_factory() as session:
        assert (await seat_statuses(session, seats))[0] == "available"


@pytest.mark.asyncio
async def test_confirm_purchase(session_factory, seats, concert, clock):
    """Confirmation sells the seats once; released holds cannot be confirmed."""
    owner = Owner.user("alice")
    async with session_factory() as session:
        service = SeatReservationService(session, clock)
        hold = await service.reserve_seats(concert.id, [seats[0].id, seats[1].id], owner)
        assert hold.seat_labels == ["A1", "A2"]

        assert await service.confirm_purchase(hold.reservation_id, "pay-1", owner) is True
        assert await service.confirm_purchase(hold.reservation_id, "pay-2", owner) is False
        assert await service.release_reservation(hold.reservation_id, owner) is False
        await session.commit()

    async with session_factory() as session:
        sold = (await session.execute(select(Seat).where(Seat.reservation_id == hold.reservation_id))).scalars().all()
    assert {s.status for s in sold} == {"sold"}
    assert {s.payment_id for s in sold} == {"pay-1"}


@pytest.mark.asyncio
async def test_cleanup_expired(session_factory, seats, concert, clock):
    """Holds past their expiry are expired and their seats freed."""
    owner = Owner.user("alice")
    async with session_factory() as session:
        service = SeatReservationService(session, clock, hold_minutes=15)
        hold = await service.reserve_seats(concert.id, [seats[0].id], owner)
        await session.commit()

    async with session_factory() as session:
        service = SeatReservationService(session, clock, hold_minutes=15)
        assert await service.cleanup_expired(clock.now() + timedelta(minutes=5)) == 0
        assert await service.cleanup_expired(clock.now() + timedelta(minutes=16)) == 1
        await session.commit()

    async with session_factory() as session:
        reservation = await session.get(SeatReservation, hold.reservation_id)
        assert reservation.status == "expired"
        assert (await seat_statuses(session, seats))[0] == "available"
