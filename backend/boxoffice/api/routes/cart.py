"""
Cart endpoints for signed-in shoppers.
"""

from fastapi import APIRouter, Depends, status

from boxoffice.api.deps import get_services
from boxoffice.core.owner import Owner
from boxoffice.core.security import get_current_owner
from boxoffice.schemas.cart import (
    CartItemAdded,
    CartItemCreate,
    CartResponse,
    CartTotal,
    DiscountApply,
    QuantityUpdate,
)
from boxoffice.services.container import Services

router = APIRouter(prefix="/cart", tags=["Cart"])


@router.get("", response_model=CartResponse)
async def get_cart(
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    """The active cart, or an empty cart when the user has none yet."""
    cart = await services.carts.get_cart(owner)
    return cart or CartResponse(user_id=owner.user_id)


@router.post("/add", response_model=CartItemAdded, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item: CartItemCreate,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    """
    Add an event ticket, flight, bus or hotel line.

    Event lines naming `seatIds` hold those seats for the shopper; the hold
    id is kept on the line and released when the line goes away.
    """
    return await services.carts.add_item(owner, item)


@router.put("/items/{item_id}", response_model=CartTotal)
async def update_cart_item(
    item_id: str,
    body: QuantityUpdate,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    """Change a line's quantity; zero removes the line."""
    return await services.carts.update_quantity(owner, item_id, body.quantity)


@router.delete("/items/{item_id}", response_model=CartTotal)
async def remove_cart_item(
    item_id: str,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.remove_item(owner, item_id)


@router.delete("", response_model=CartTotal)
async def clear_cart(
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.clear_cart(owner)


@router.post("/discount", response_model=CartResponse)
async def apply_discount(
    body: DiscountApply,
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.apply_discount(owner, body.code)


@router.delete("/discount", response_model=CartResponse)
async def remove_discount(
    owner: Owner = Depends(get_current_owner),
    services: Services = Depends(get_services),
):
    return await services.carts.remove_discount(owner)
