"""
Guest (no account) endpoints: cart keyed by cart id, checkout, and ticket
retrieval by email plus confirmation code.
"""

from fastapi import APIRouter, Depends, Query, status

from boxoffice.api.deps import get_services, guest_owner
from boxoffice.core.owner import Owner
from boxoffice.schemas.cart import CartItemAdded, CartItemCreate, CartResponse, CartTotal, GuestCartCreated
from boxoffice.schemas.checkout import CheckoutCompleted, CheckoutResponse
from boxoffice.schemas.guest import (
    GuestAccountCreated,
    GuestCheckoutComplete,
    GuestCheckoutInitiate,
    GuestOrderSummary,
    GuestRegister,
    GuestTicketsResponse,
    MessageResponse,
    ResendLink,
)
from boxoffice.services.container import Services

router = APIRouter(prefix="/guest", tags=["Guest"])

RESEND_MESSAGE = "If an order exists for this email, an access link has been sent."


@router.post("/cart/create", response_model=GuestCartCreated, status_code=status.HTTP_201_CREATED)
async def create_guest_cart(services: Services = Depends(get_services)):
    cart = await services.carts.create_guest_cart()
    return {"cart_id": cart.id, "is_guest": True, "expires_at": cart.expires_at}


@router.get("/cart/{cart_id}", response_model=CartResponse)
async def get_guest_cart(
    owner: Owner = Depends(guest_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.get_cart(owner)


@router.post("/cart/{cart_id}/add", response_model=CartItemAdded, status_code=status.HTTP_201_CREATED)
async def add_to_guest_cart(
    item: CartItemCreate,
    owner: Owner = Depends(guest_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.add_item(owner, item)


@router.delete("/cart/{cart_id}/items/{item_id}", response_model=CartTotal)
async def remove_guest_cart_item(
    item_id: str,
    owner: Owner = Depends(guest_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.remove_item(owner, item_id)


@router.delete("/cart/{cart_id}", response_model=CartTotal)
async def clear_guest_cart(
    owner: Owner = Depends(guest_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.clear_cart(owner)


@router.post("/checkout/initiate", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def initiate_guest_checkout(
    body: GuestCheckoutInitiate,
    services: Services = Depends(get_services),
):
    """Validate the guest's contact details and open a pending checkout for the cart."""
    return await services.checkouts.initiate_checkout(
        Owner.guest(body.cart_id),
        body.payment_method,
        body.billing_info or body.guest_info.model_dump(),
        guest=body.guest_info,
    )


@router.post("/checkout/complete", response_model=CheckoutCompleted)
async def complete_guest_checkout(
    body: GuestCheckoutComplete,
    services: Services = Depends(get_services),
):
    """
    Complete the cart's guest checkout, opening one from `billingAddress`
    when none is pending. The response carries the confirmation code the
    guest uses to retrieve tickets.
    """
    return await services.guests.complete_guest_checkout(
        body.cart_id, body.billing_address, body.payment_id, body.checkout_id
    )


@router.get("/tickets", response_model=GuestTicketsResponse)
async def get_guest_tickets(
    email: str = Query(..., min_length=3),
    code: str = Query(..., min_length=1),
    services: Services = Depends(get_services),
):
    return await services.guests.get_guest_tickets(email, code)


@router.post("/resend-link", response_model=MessageResponse)
async def resend_access_link(
    body: ResendLink,
    services: Services = Depends(get_services),
):
    """Same response whether or not the address has orders."""
    await services.guests.send_guest_access_link(body.email)
    return {"message": RESEND_MESSAGE}


@router.get("/orders", response_model=list[GuestOrderSummary])
async def get_guest_orders(
    email: str = Query(..., min_length=3),
    code: str = Query(..., min_length=1),
    services: Services = Depends(get_services),
):
    return await services.guests.get_guest_order_history(email, code)


@router.post("/register", response_model=GuestAccountCreated, status_code=status.HTTP_201_CREATED)
async def register_guest(
    body: GuestRegister,
    services: Services = Depends(get_services),
):
    """Turn a guest identity into an account and link every order placed with that email."""
    return await services.guests.convert_guest_to_account(
        body.email, body.confirmation_code, body.password, body.password_confirm
    )
