"""
TTL sweeper: one background task that periodically expires stale
checkouts, abandoned guest carts and seat holds, and archives old guest
orders. Each pass runs in its own session and commits once.
"""

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from boxoffice.core.clock import Clock
from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.services.container import build_services
from boxoffice.services.interfaces.optimistic_guard import OptimisticCheckoutGuard
from boxoffice.services.notification_service import Notifier

logger = get_logger(__name__)


async def sweep_once(session_factory: async_sessionmaker, clock: Clock, notifier: Notifier) -> dict:
    now = clock.now()
    async with session_factory() as session:
        try:
            services = build_services(session, clock, notifier, OptimisticCheckoutGuard())
            counts = {
                "checkouts": await services.checkouts.expire_stale_checkouts(now),
                "guest_carts": await services.guests.expire_guest_carts(now),
                "reservations": await services.reservations.cleanup_expired(now),
                "guest_orders": await services.guests.archive_old_guest_orders(now),
            }
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return counts


class TTLSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock,
        notifier: Notifier,
        interval_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.notifier = notifier
        self.interval = interval_seconds or get_settings().SWEEP_INTERVAL_SECONDS
        self.task: Optional[asyncio.Task] = None

    async def _loop(self) -> None:
        while True:
            try:
                counts = await sweep_once(self.session_factory, self.clock, self.notifier)
                if any(counts.values()):
                    logger.info("sweep_completed", **counts)
            except Exception:
                # retried on the next pass
                logger.exception("sweep_failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.task is None:
            self.task = asyncio.create_task(self._loop())
            logger.info("sweeper_started", interval_seconds=self.interval)

    async def stop(self) -> None:
        if self.task is None:
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        self.task = None
        logger.info("sweeper_stopped")
