"""
Who a cart, checkout or seat hold belongs to.

Authenticated shoppers are identified by user id; guests by the id of the
cart they were handed at /guest/cart/create.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Owner:
    user_id: Optional[str] = None
    cart_id: Optional[str] = None
    role: str = "customer"

    @classmethod
    def user(cls, user_id: str, role: str = "customer") -> "Owner":
        return cls(user_id=user_id, role=role)

    @classmethod
    def guest(cls, cart_id: str) -> "Owner":
        return cls(cart_id=cart_id, role="guest")

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def key(self) -> str:
        """Stable reference stored on seat reservations."""
        if self.user_id is not None:
            return f"user:{self.user_id}"
        return f"guest:{self.cart_id}"
