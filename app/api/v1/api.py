from fastapi import APIRouter

from app.api.v1.endpoints import (
    auth,
    appointments,
    public,
    shop,
)

api_router = APIRouter()

# Operator authentication
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])

# Operator appointment management
api_router.include_router(
    appointments.router, prefix="/appointments", tags=["appointments"]
)

# Shop configuration
api_router.include_router(shop.router, prefix="/shop", tags=["shop"])

# Public booking endpoints (client-facing)
api_router.include_router(public.router, prefix="/public", tags=["public"])
