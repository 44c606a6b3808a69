"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from boxoffice.api.routes import cart, checkout, guest

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(cart.router)
api_router.include_router(checkout.router)
api_router.include_router(guest.router)
