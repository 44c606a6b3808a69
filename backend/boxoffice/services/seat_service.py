"""
Seat reservation manager backed by the `seats` table.

CONCURRENCY STRATEGY: Conditional UPDATE, all-or-nothing
=========================================================

Problem:
  Two shoppers add the same seat to their carts at the same time.
  Both read status='available', both mark it reserved.

Solution:
  A single UPDATE moves every requested seat from available to reserved:

    UPDATE seats SET status='reserved', reservation_id=:rid
    WHERE id IN (:seat_ids) AND event_id=:event_id AND status='available'

  If rowcount < len(seat_ids) some seat was taken in between. The seats this
  statement did grab are put back and the hold is refused with
  SeatsUnavailable. No row locks are held across the request.

Holds expire after SEAT_HOLD_MINUTES; the sweeper calls cleanup_expired.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.clock import Clock
from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import SeatsUnavailable
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_inventory_conflict, record_sweep
from boxoffice.core.owner import Owner
from boxoffice.db.base import new_id
from boxoffice.models.seat import Seat, SeatReservation
from boxoffice.services.interfaces.reservations import SeatHold, SeatReservationClient

logger = get_logger(__name__)


class SeatReservationService(SeatReservationClient):
    def __init__(self, db: AsyncSession, clock: Clock, hold_minutes: Optional[int] = None):
        self.db = db
        self.clock = clock
        self.hold_minutes = hold_minutes or get_settings().SEAT_HOLD_MINUTES

    async def reserve_seats(self, event_id: str, seat_ids: List[str], owner: Owner) -> SeatHold:
        # Keep caller order, drop duplicates
        seat_ids = list(dict.fromkeys(str(s) for s in seat_ids))
        if not seat_ids:
            raise SeatsUnavailable("No seats requested", event_id=event_id)

        now = self.clock.now()
        reservation_id = new_id()

        result = await self.db.execute(
            update(Seat)
            .where(
                Seat.id.in_(seat_ids),
                Seat.event_id == event_id,
                Seat.status == "available",
                Seat.deleted_at.is_(None),
            )
            .values(status="reserved", reservation_id=reservation_id)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != len(seat_ids):
            await self.db.execute(
                update(Seat)
                .where(Seat.reservation_id == reservation_id)
                .values(status="available", reservation_id=None)
                .execution_options(synchronize_session=False)
            )
            record_inventory_conflict("seats")
            logger.warning(
                "seat_reservation_refused",
                event_id=event_id,
                requested=len(seat_ids),
                reserved=result.rowcount,
            )
            raise SeatsUnavailable(event_id=event_id, seat_ids=seat_ids)

        reservation = SeatReservation(
            id=reservation_id,
            event_id=event_id,
            owner_ref=owner.key,
            seat_ids=seat_ids,
            status="held",
            expires_at=now + timedelta(minutes=self.hold_minutes),
            created_at=now,
        )
        self.db.add(reservation)
        await self.db.flush()

        labels = await self.seat_labels(seat_ids)
        logger.info(
            "seats_reserved",
            reservation_id=reservation_id,
            event_id=event_id,
            seats=len(seat_ids),
            owner=owner.key,
        )
        return SeatHold(
            reservation_id=reservation_id,
            event_id=event_id,
            expires_at=reservation.expires_at,
            seat_ids=seat_ids,
            seat_labels=labels,
        )

    async def seat_labels(self, seat_ids: List[str]) -> List[str]:
        """Row+number labels (e.g. "A1") in the order the seats were requested."""
        result = await self.db.execute(select(Seat).where(Seat.id.in_(seat_ids)))
        by_id = {seat.id: seat.label for seat in result.scalars().all()}
        return [by_id[s] for s in seat_ids if s in by_id]

    async def _held(self, reservation_id: str) -> Optional[SeatReservation]:
        result = await self.db.execute(
            select(SeatReservation).where(SeatReservation.id == reservation_id)
        )
        reservation = result.scalar_one_or_none()
        if reservation is None or reservation.status != "held":
            return None
        return reservation

    async def release_reservation(self, reservation_id: str, owner: Owner) -> bool:
        """Put held seats back on sale. Returns False when there was nothing to release."""
        reservation = await self._held(reservation_id)
        if reservation is None:
            return False
        if reservation.owner_ref != owner.key:
            logger.warning(
                "seat_release_owner_mismatch",
                reservation_id=reservation_id,
                owner=owner.key,
                holder=reservation.owner_ref,
            )
            return False

        claimed = await self.db.execute(
            update(SeatReservation)
            .where(SeatReservation.id == reservation_id, SeatReservation.status == "held")
            .values(status="released", released_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            return False

        await self.db.execute(
            update(Seat)
            .where(Seat.reservation_id == reservation_id, Seat.status == "reserved")
            .values(status="available", reservation_id=None)
            .execution_options(synchronize_session=False)
        )
        logger.info("seats_released", reservation_id=reservation_id, owner=owner.key)
        return True

    async def confirm_purchase(self, reservation_id: str, payment_id: str, owner: Owner) -> bool:
        """Held seats become sold and bound to the payment. Repeat calls are no-ops."""
        reservation = await self._held(reservation_id)
        if reservation is None:
            return False
        if reservation.owner_ref != owner.key:
            logger.warning(
                "seat_confirm_owner_mismatch",
                reservation_id=reservation_id,
                owner=owner.key,
                holder=reservation.owner_ref,
            )
            return False

        claimed = await self.db.execute(
            update(SeatReservation)
            .where(SeatReservation.id == reservation_id, SeatReservation.status == "held")
            .values(status="confirmed", payment_id=payment_id, confirmed_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            return False

        await self.db.execute(
            update(Seat)
            .where(Seat.reservation_id == reservation_id)
            .values(status="sold", payment_id=payment_id)
            .execution_options(synchronize_session=False)
        )
        logger.info("seats_confirmed", reservation_id=reservation_id, payment_id=payment_id)
        return True

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Expire stale holds and free their seats."""
        now = now or self.clock.now()
        result = await self.db.execute(
            select(SeatReservation).where(
                SeatReservation.status == "held",
                SeatReservation.expires_at < now,
            )
        )
        stale = list(result.scalars().all())

        expired = 0
        for reservation in stale:
            claimed = await self.db.execute(
                update(SeatReservation)
                .where(SeatReservation.id == reservation.id, SeatReservation.status == "held")
                .values(status="expired", released_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                continue
            await self.db.execute(
                update(Seat)
                .where(Seat.reservation_id == reservation.id, Seat.status == "reserved")
                .values(status="available", reservation_id=None)
                .execution_options(synchronize_session=False)
            )
            expired += 1

        record_sweep("reservation", expired)
        if expired:
            logger.info("seat_holds_expired", count=expired)
        return expired
