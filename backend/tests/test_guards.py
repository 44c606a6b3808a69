"""
Tests for the checkout completion guards and the access policy.
"""

from types import SimpleNamespace

import pytest
import redis.asyncio as redis

from boxoffice.core.exceptions import Forbidden, OrderNotFound
from boxoffice.core.owner import Owner
from boxoffice.services.checkout_guard_service import RedisCheckoutGuard
from boxoffice.services.interfaces import OptimisticCheckoutGuard
from boxoffice.services.policy import PAY, READ, AccessPolicy


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET NX / DELETE."""

    def __init__(self, fail: bool = False):
        self.store = {}
        self.fail = fail

    async def set(self, key, value, nx=False, ex=None):
        if self.fail:
            raise redis.ConnectionError("connection refused")
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        if self.fail:
            raise redis.ConnectionError("connection refused")
        self.store.pop(key, None)


@pytest.mark.asyncio
async def test_redis_guard_blocks_second_completion():
    """While one completion holds the lock a second is refused."""
    guard = RedisCheckoutGuard(FakeRedis(), ttl_seconds=30)
    assert await guard.acquire("co-1") is True
    assert await guard.acquire("co-1") is False
    assert await guard.acquire("co-2") is True

    await guard.release("co-1")
    assert await guard.acquire("co-1") is True


@pytest.mark.asyncio
async def test_redis_guard_fails_open():
    """Redis errors admit the request; the database claim still decides."""
    guard = RedisCheckoutGuard(FakeRedis(fail=True), ttl_seconds=30)
    assert await guard.acquire("co-1") is True
    await guard.release("co-1")


@pytest.mark.asyncio
async def test_optimistic_guard_always_admits():
    guard = OptimisticCheckoutGuard()
    assert await guard.acquire("co-1") is True
    assert await guard.acquire("co-1") is True


def test_policy_owner_rules():
    """Users own rows by user id, guests by cart id, admins may read anything."""
    policy = AccessPolicy()
    order = SimpleNamespace(user_id="u1", is_guest=False, cart_id=None)
    guest_checkout = SimpleNamespace(user_id=None, is_guest=True, cart_id="c1")

    assert policy.check(Owner.user("u1"), order, PAY)
    assert not policy.check(Owner.user("u2"), order, READ)
    assert policy.check(Owner.user("u2", role="admin"), order, READ)
    assert not policy.check(Owner.user("u2", role="admin"), order, PAY)
    assert policy.check(Owner.guest("c1"), guest_checkout, READ)
    assert not policy.check(Owner.guest("c2"), guest_checkout, READ)
    assert not policy.check(Owner.guest("c1"), order, READ)


def test_policy_enforce_hides_rows():
    """Denials surface as not-found when asked, otherwise as forbidden."""
    policy = AccessPolicy()
    order = SimpleNamespace(user_id="u1", is_guest=False, cart_id=None)

    with pytest.raises(OrderNotFound):
        policy.enforce(Owner.user("u2"), order, READ, not_found=OrderNotFound)
    with pytest.raises(Forbidden):
        policy.enforce(Owner.user("u2"), order, READ)
