"""
FastAPI dependencies that assemble the request's services.

Tests override `get_db`, `get_clock`, `get_email_client` and
`get_session_factory` to swap in their own collaborators.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.core.clock import Clock, get_clock
from boxoffice.core.owner import Owner
from boxoffice.db.session import AsyncSessionLocal, get_db
from boxoffice.services.container import Services, build_services
from boxoffice.services.interfaces.checkout_guard import CheckoutGuard
from boxoffice.services.notification_service import EmailClient, NotificationDispatcher, Notifier, get_dispatcher
from boxoffice.services.strategy_factory import get_checkout_guard

_email_client = None


def get_email_client() -> EmailClient:
    global _email_client
    if _email_client is None:
        _email_client = EmailClient()
    return _email_client


def get_session_factory() -> async_sessionmaker:
    return AsyncSessionLocal


def get_notifier(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    email_client: EmailClient = Depends(get_email_client),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Notifier:
    return Notifier(dispatcher, email_client, session_factory)


async def get_guard() -> CheckoutGuard:
    return await get_checkout_guard()


def get_services(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    guard: CheckoutGuard = Depends(get_guard),
) -> Services:
    return build_services(db, clock, notifier, guard)


def guest_owner(cart_id: str) -> Owner:
    return Owner.guest(cart_id)
