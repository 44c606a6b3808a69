"""
Optimistic checkout guard - no pre-check.
Relies entirely on the conditional status transition in the database.
"""

from boxoffice.services.interfaces.checkout_guard import CheckoutGuard


class OptimisticCheckoutGuard(CheckoutGuard):
    """
    Always admit. The checkout row claim (`UPDATE ... WHERE status='pending'`)
    decides which of two concurrent completions wins.

    Use when:
    - Single node deployments or Redis is not available
    - Simplicity preferred over fail-fast
    """

    async def acquire(self, checkout_id: str) -> bool:
        return True

    async def release(self, checkout_id: str) -> None:
        pass
