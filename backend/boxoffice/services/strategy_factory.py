"""
Checkout guard factory.
Configures which completion guard strategy to use.
"""

from boxoffice.core.config import get_settings
from boxoffice.infrastructure.redis_client import get_redis
from boxoffice.services.checkout_guard_service import RedisCheckoutGuard
from boxoffice.services.interfaces.checkout_guard import CheckoutGuard
from boxoffice.services.interfaces.optimistic_guard import OptimisticCheckoutGuard


async def build_checkout_guard() -> CheckoutGuard:
    """
    Build the configured guard.

    Strategy selection via CHECKOUT_GUARD:
    - optimistic (default): database claim only
    - redis: SET NX lock per checkout, falls back to optimistic when Redis
      is disabled or unreachable
    """
    settings = get_settings()
    if settings.CHECKOUT_GUARD == "redis":
        client = await get_redis()
        if client is not None:
            return RedisCheckoutGuard(client, settings.CHECKOUT_LOCK_TTL_SECONDS)
    return OptimisticCheckoutGuard()


# Singleton instance
_guard: CheckoutGuard = None


async def get_checkout_guard() -> CheckoutGuard:
    """Get checkout guard singleton."""
    global _guard
    if _guard is None:
        _guard = await build_checkout_guard()
    return _guard


def reset_checkout_guard() -> None:
    global _guard
    _guard = None
