"""
Redis-backed checkout completion guard.
Implements CheckoutGuard interface using a short SET NX lock per checkout.

Circuit Breaker Pattern:
  On Redis failure, the guard "fails open" (admits the request).
  The database remains authoritative: the checkout claim is a conditional
  UPDATE on status='pending', so a Redis outage can never produce two orders.
"""

from typing import Optional

import redis.asyncio as redis

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import redis_guard_errors
from boxoffice.services.interfaces.checkout_guard import CheckoutGuard

logger = get_logger(__name__)

LOCK_PREFIX = "checkout:complete:"


class RedisCheckoutGuard(CheckoutGuard):
    """
    Fail fast at a Redis gate before opening the checkout transaction.

    Use when:
    - Several API nodes serve the same storefront
    - Clients retry aggressively (double submit, gateway callbacks)
    """

    def __init__(self, client: Optional[redis.Redis], ttl_seconds: Optional[int] = None):
        self.redis = client
        self.ttl_seconds = ttl_seconds or get_settings().CHECKOUT_LOCK_TTL_SECONDS

    async def acquire(self, checkout_id: str) -> bool:
        if self.redis is None:
            return True
        try:
            acquired = await self.redis.set(
                f"{LOCK_PREFIX}{checkout_id}", "1", nx=True, ex=self.ttl_seconds
            )
            return bool(acquired)
        except (redis.RedisError, OSError) as e:
            redis_guard_errors.inc()
            logger.warning("checkout_guard_unavailable", checkout_id=checkout_id, error=str(e))
            return True

    async def release(self, checkout_id: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.delete(f"{LOCK_PREFIX}{checkout_id}")
        except (redis.RedisError, OSError) as e:
            # Lock expires on its own TTL
            logger.warning("checkout_guard_release_failed", checkout_id=checkout_id, error=str(e))
