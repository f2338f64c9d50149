from fastapi import APIRouter, Depends

from app.api.deps.auth import get_current_operator
from app.api.deps.services import get_shop_service
from app.schemas.shop import (
    BlockedDateRequest,
    ClientNameRequest,
    ShopConfigRead,
    ShopConfigUpdate,
)
from app.services.shop import ShopService
from app.utils.validation import parse_iso_date

router = APIRouter(dependencies=[Depends(get_current_operator)])


@router.get("/config", response_model=ShopConfigRead)
async def get_config(shop: ShopService = Depends(get_shop_service)):
    return await shop.get_config()


@router.patch("/config", response_model=ShopConfigRead)
async def update_config(
    update: ShopConfigUpdate, shop: ShopService = Depends(get_shop_service)
):
    """Update opening hours, lunch break, workdays and other knobs."""
    return await shop.update_config(update)


@router.post("/toggle", response_model=ShopConfigRead)
async def toggle_shop(shop: ShopService = Depends(get_shop_service)):
    """Open or close the shop for new bookings."""
    return await shop.toggle_shop()


@router.post("/released-clients", response_model=ShopConfigRead)
async def release_client(
    request: ClientNameRequest, shop: ShopService = Depends(get_shop_service)
):
    """Exempt a client from the booking cooldown."""
    return await shop.release_client(request.client_name)


@router.delete("/released-clients/{client_name}", response_model=ShopConfigRead)
async def unrelease_client(
    client_name: str, shop: ShopService = Depends(get_shop_service)
):
    return await shop.unrelease_client(client_name)


@router.post("/blocked-dates", response_model=ShopConfigRead)
async def block_date(
    request: BlockedDateRequest, shop: ShopService = Depends(get_shop_service)
):
    return await shop.block_date(request.date)


@router.delete("/blocked-dates/{blocked_date}", response_model=ShopConfigRead)
async def unblock_date(
    blocked_date: str, shop: ShopService = Depends(get_shop_service)
):
    return await shop.unblock_date(parse_iso_date(blocked_date))
