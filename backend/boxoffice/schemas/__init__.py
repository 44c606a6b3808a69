from boxoffice.schemas.cart import CartItemCreate, CartItemResponse, CartResponse
from boxoffice.schemas.checkout import CheckoutComplete, CheckoutInitiate, CheckoutResponse, OrderResponse
from boxoffice.schemas.guest import GuestCheckoutComplete, GuestCheckoutInitiate, GuestRegister

__all__ = [
    "CartItemCreate", "CartItemResponse", "CartResponse",
    "CheckoutInitiate", "CheckoutComplete", "CheckoutResponse", "OrderResponse",
    "GuestCheckoutInitiate", "GuestCheckoutComplete", "GuestRegister",
]
