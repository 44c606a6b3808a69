"""
Checkout completion guard interface.
Allows swapping between different concurrency control approaches.
"""

from abc import ABC, abstractmethod


class CheckoutGuard(ABC):
    """
    Interface for checkout completion guards.

    Implementations:
    - OptimisticCheckoutGuard: No pre-check, rely on the conditional
      `WHERE status='pending'` claim in the database
    - RedisCheckoutGuard: Short-lived lock per checkout id so a double-click
      fails fast before opening a transaction
    """

    @abstractmethod
    async def acquire(self, checkout_id: str) -> bool:
        """
        Try to take the completion slot for a checkout.

        Returns:
            True if admitted (proceed to DB)
            False if another completion for the same checkout is in flight
        """

    @abstractmethod
    async def release(self, checkout_id: str) -> None:
        """Give the slot back once the completion attempt has finished."""
