"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .checkout_guard import CheckoutGuard
from .optimistic_guard import OptimisticCheckoutGuard
from .reservations import SeatHold, SeatReservationClient

__all__ = ['CheckoutGuard', 'OptimisticCheckoutGuard', 'SeatHold', 'SeatReservationClient']
