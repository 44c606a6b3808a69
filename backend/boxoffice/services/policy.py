"""
Access policy: who may do what to carts, checkouts and orders.

Resources are passed as ORM rows; a resource is owned by a user when its
`user_id` matches, and by a guest when it belongs to the guest's cart.
"""

from typing import Any

from boxoffice.core.exceptions import Forbidden
from boxoffice.core.owner import Owner

READ = "read"
WRITE = "write"
PAY = "pay"

STAFF_ROLES = ("admin",)


class AccessPolicy:
    def check(self, actor: Owner, resource: Any, action: str) -> bool:
        if actor.role in STAFF_ROLES and action == READ:
            return True

        if actor.user_id is not None:
            return getattr(resource, "user_id", None) == actor.user_id

        # Guests only ever act on rows hanging off their own cart
        cart_id = getattr(resource, "cart_id", None)
        if cart_id is None and getattr(resource, "is_guest", None) is not None:
            cart_id = getattr(resource, "id", None)
        return bool(getattr(resource, "is_guest", False)) and cart_id == actor.cart_id

    def enforce(self, actor: Owner, resource: Any, action: str, not_found: type = None) -> None:
        """
        Raise when the actor may not act on the resource.

        With `not_found` the denial is reported as that NotFound subclass so
        callers cannot probe for rows they do not own.
        """
        if self.check(actor, resource, action):
            return
        if not_found is not None:
            raise not_found()
        raise Forbidden()
