from datetime import datetime
from typing import Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.database import get_db
from app.core.locks import SlotLockManager, get_lock_manager
from app.services.appointment import BookingService
from app.services.dashboard import DashboardService
from app.services.notification_service import Notifier, PushNotifier
from app.services.shop import ShopService


def get_locks() -> SlotLockManager:
    return get_lock_manager()


def get_notifier() -> Notifier:
    return PushNotifier()


def get_clock() -> Callable[[], datetime]:
    """Source of the shop-local "now" used by booking rules."""
    return datetime.now


async def get_booking_service(
    db: AsyncSession = Depends(get_db),
    locks: SlotLockManager = Depends(get_locks),
    notifier: Notifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(db, locks=locks, notifier=notifier, clock=clock)


async def get_shop_service(
    db: AsyncSession = Depends(get_db),
    locks: SlotLockManager = Depends(get_locks),
) -> ShopService:
    return ShopService(db, locks=locks)


async def get_dashboard_service(
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DashboardService:
    return DashboardService(db, clock=clock)
