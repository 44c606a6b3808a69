"""
Seat reservation contract consumed by the cart and checkout services.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from boxoffice.core.owner import Owner


@dataclass
class SeatHold:
    reservation_id: str
    event_id: str
    expires_at: datetime
    seat_ids: List[str] = field(default_factory=list)
    seat_labels: List[str] = field(default_factory=list)


class SeatReservationClient(ABC):
    """
    Holds on specific seats of an event.

    - reserve_seats is all-or-nothing and raises SeatsUnavailable
    - release_reservation and confirm_purchase are idempotent
    """

    @abstractmethod
    async def reserve_seats(self, event_id: str, seat_ids: List[str], owner: Owner) -> SeatHold:
        ...

    @abstractmethod
    async def release_reservation(self, reservation_id: str, owner: Owner) -> bool:
        ...

    @abstractmethod
    async def confirm_purchase(self, reservation_id: str, payment_id: str, owner: Owner) -> bool:
        ...
