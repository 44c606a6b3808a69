"""
Checkout and order endpoints for signed-in shoppers.
"""

from fastapi import APIRouter, Depends, status

from boxoffice.api.deps import get_services
from boxoffice.core.owner import Owner
from boxoffice.core.security import get_current_owner
from boxoffice.schemas.checkout import (
    BalancePayment,
    CheckoutComplete,
    CheckoutCompleted,
    CheckoutInitiate,
    CheckoutResponse,
    OrderResponse,
)
from boxoffice.services.container import Services

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/initiate", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def initiate_checkout(
    body: CheckoutInitiate,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    """Snapshot the cart total into a pending checkout that expires after the checkout TTL."""
    return await services.checkouts.initiate_checkout(owner, body.payment_method, body.billing_info)


@router.post("/complete", response_model=CheckoutCompleted)
async def complete_checkout(
    body: CheckoutComplete,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    """
    Turn a pending checkout into an order against a completed payment.

    Completing the same checkout twice returns the original order with
    `replayed: true`. A sold-out event or a lost seat hold returns 409 and
    leaves the cart as it was.
    """
    return await services.checkouts.complete_checkout(owner, body.checkout_id, body.payment_id)


@router.get("/orders", response_model=list[OrderResponse])
async def list_orders(
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    return await services.orders.list_orders(owner)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    return await services.orders.get_order(owner, order_id)


@router.post("/orders/{order_id}/pay", response_model=OrderResponse)
async def pay_order_balance(
    order_id: str,
    body: BalancePayment,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    """Apply a later payment to a partially paid order."""
    return await services.orders.pay_balance(owner, order_id, body.payment_id)


@router.get("/{checkout_id}", response_model=CheckoutResponse)
async def get_checkout(
    checkout_id: str,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    return await services.checkouts.get_checkout(owner, checkout_id)


@router.post("/{checkout_id}/cancel", response_model=CheckoutResponse)
async def cancel_checkout(
    checkout_id: str,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    """Cancel a pending checkout and give its held seats back."""
    return await services.checkouts.cancel_checkout(owner, checkout_id)
