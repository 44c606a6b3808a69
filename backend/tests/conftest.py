"""
Pytest fixtures for the test database, HTTP client and seeded catalogue.

Every test gets its own SQLite file. Requests run in fresh sessions (the
checkout path commits and rolls back on its own), and fixtures or
assertions open short-lived sessions through `session_factory`.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["CHECKOUT_GUARD"] = "optimistic"
os.environ["BCRYPT_ROUNDS"] = "10"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from boxoffice.api.deps import get_email_client, get_session_factory
from boxoffice.core.clock import Clock, get_clock
from boxoffice.core.security import create_access_token
from boxoffice.db.base import Base
from boxoffice.db.session import enable_sqlite_savepoints, get_db
from boxoffice.main import app
from boxoffice.models import (
    DiscountCode,
    Event,
    EventPricingTier,
    Payment,
    Seat,
    User,
    Venue,
)
from boxoffice.services.notification_service import EmailClient, NotificationDispatcher, get_dispatcher

KENYAN_PHONE = "0712345678"


class FrozenClock(Clock):
    """Clock the tests can move forward."""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingEmailClient(EmailClient):
    def __init__(self):
        super().__init__(enabled=False)
        self.sent = []

    async def send(self, message) -> bool:
        self.sent.append(message)
        return True


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a per-test SQLite file, yield a session factory, then drop them."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(url, echo=False)
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def email_client() -> RecordingEmailClient:
    return RecordingEmailClient()


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    """Never started: tests run queued jobs with `await dispatcher.drain()`."""
    return NotificationDispatcher(maxsize=100)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, clock, email_client, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the database, clock and notification transport swapped out."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_email_client] = lambda: email_client
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def add_rows(session_factory, *rows) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def auth_headers_for(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


@pytest_asyncio.fixture
async def organizer(session_factory) -> User:
    """Organizer paying a 10% commission."""
    user = User(email="organizer@example.com", role="organizer", commission_percentage=Decimal("10"))
    await add_rows(session_factory, user)
    return user


@pytest_asyncio.fixture
async def customer(session_factory) -> User:
    user = User(email="buyer@example.com", first_name="Ada", last_name="Buyer")
    await add_rows(session_factory, user)
    return user


@pytest.fixture
def auth_headers(customer) -> dict:
    return auth_headers_for(customer.id)


@pytest_asyncio.fixture
async def concert(session_factory, organizer, clock) -> Event:
    """Event at $50 general admission, deposits of 20% with a $10 floor."""
    venue = Venue(name="Arena", address="1 Main St", city="Nairobi")
    await add_rows(session_factory, venue)
    event = Event(
        title="Test Concert",
        organizer_id=organizer.id,
        venue_id=venue.id,
        start_date=clock.now() + timedelta(days=30),
        end_date=clock.now() + timedelta(days=30, hours=3),
        base_price=Decimal("50.00"),
        capacity=100,
        sold_tickets=0,
        allow_deposit=True,
        deposit_type="percentage",
        deposit_value=Decimal("20"),
        min_deposit_amount=Decimal("10.00"),
    )
    await add_rows(session_factory, event)
    tier = EventPricingTier(
        event_id=event.id, name="general", price=Decimal("50.00"), total_tickets=100, available_tickets=100
    )
    await add_rows(session_factory, tier)
    return event


@pytest_asyncio.fixture
async def nearly_sold_out(session_factory, organizer, clock) -> Event:
    """Event whose general tier has a single ticket left."""
    event = Event(
        title="Last Ticket Show",
        organizer_id=organizer.id,
        start_date=clock.now() + timedelta(days=10),
        base_price=Decimal("40.00"),
        capacity=50,
        sold_tickets=49,
    )
    await add_rows(session_factory, event)
    tier = EventPricingTier(
        event_id=event.id, name="general", price=Decimal("40.00"), total_tickets=50, available_tickets=1
    )
    await add_rows(session_factory, tier)
    return event


@pytest_asyncio.fixture
async def seats(session_factory, concert) -> list:
    """Row A seats 1-4 for the concert."""
    rows = [
        Seat(event_id=concert.id, seat_section="floor", seat_row="A", seat_number=str(n), price=Decimal("50.00"))
        for n in range(1, 5)
    ]
    await add_rows(session_factory, *rows)
    return rows


@pytest_asyncio.fixture
async def discount_code(session_factory, clock) -> DiscountCode:
    code = DiscountCode(
        code="SAVE15",
        discount_percentage=Decimal("15"),
        is_active=True,
        expires_at=clock.now() + timedelta(days=7),
    )
    await add_rows(session_factory, code)
    return code


@pytest.fixture
def make_payment(session_factory):
    """Create a payment row; completed unless told otherwise."""

    async def _make(amount, user_id=None, status="completed") -> str:
        payment = Payment(
            user_id=user_id,
            payment_method="stripe",
            amount=Decimal(str(amount)),
            status=status,
        )
        await add_rows(session_factory, payment)
        return payment.id

    return _make
