from datetime import date, time
from typing import Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import commit_or_raise
from app.core.errors import BookingValidationError
from app.core.locks import SHOP_CONFIG_LOCK_KEY, SlotLockManager, get_lock_manager
from app.models.shop import SHOP_CONFIG_ID, ShopConfig
from app.schemas.shop import ShopConfigUpdate, ShopSettings
from app.services.clients import ClientKey
from app.utils.validation import format_iso_date

logger = structlog.get_logger(__name__)

DEFAULT_SHOP_CONFIG = {
    "is_open": True,
    "open_time": time(9, 0),
    "close_time": time(20, 0),
    "lunch_start": None,
    "lunch_end": None,
    "interval_minutes": 40,
    "work_days": [1, 2, 3, 4, 5, 6],
    "blocked_dates": [],
    "released_clients": [],
    "holiday_country": None,
}


def to_settings(config: ShopConfig) -> ShopSettings:
    """Snapshot an ORM config row into an immutable settings aggregate."""
    return ShopSettings.model_validate(config)


class ShopService:
    """Operator-managed shop configuration."""

    def __init__(self, db: AsyncSession, locks: Optional[SlotLockManager] = None):
        self.db = db
        self.locks = locks or get_lock_manager()

    async def get_config(self) -> ShopConfig:
        """Get the configuration row, creating the defaults on first use."""
        result = await self.db.execute(
            select(ShopConfig).where(ShopConfig.id == SHOP_CONFIG_ID)
        )
        config = result.scalar_one_or_none()
        if config is not None:
            return config

        config = ShopConfig(id=SHOP_CONFIG_ID, **DEFAULT_SHOP_CONFIG)
        self.db.add(config)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request created it first
            await self.db.rollback()
            result = await self.db.execute(
                select(ShopConfig).where(ShopConfig.id == SHOP_CONFIG_ID)
            )
            return result.scalar_one()

        logger.info("Default shop configuration created")
        await self.db.refresh(config)
        return config

    async def get_settings(self, fresh: bool = False) -> ShopSettings:
        """Snapshot the configuration; ``fresh`` re-reads it from the store."""
        config = await self._fresh_config() if fresh else await self.get_config()
        return to_settings(config)

    async def _fresh_config(self) -> ShopConfig:
        config = await self.get_config()
        await self.db.refresh(config)
        return config

    async def update_config(self, update: ShopConfigUpdate) -> ShopConfig:
        """Apply a partial update after validating the merged configuration."""
        changes = update.model_dump(exclude_unset=True)
        if "blocked_dates" in changes:
            changes["blocked_dates"] = sorted(
                {format_iso_date(d) for d in changes["blocked_dates"]}
            )
        if "work_days" in changes:
            changes["work_days"] = sorted(set(changes["work_days"]))
        if "released_clients" in changes:
            changes["released_clients"] = sorted(
                {str(ClientKey.from_name(n)) for n in changes["released_clients"]}
            )
        if "holiday_country" in changes and changes["holiday_country"]:
            changes["holiday_country"] = changes["holiday_country"].upper()

        async with self.locks.acquire(SHOP_CONFIG_LOCK_KEY):
            config = await self._fresh_config()
            merged = {
                column: getattr(config, column) for column in DEFAULT_SHOP_CONFIG
            }
            merged.update(changes)
            try:
                ShopSettings.model_validate(merged)
            except ValidationError as e:
                messages = "; ".join(err["msg"] for err in e.errors())
                logger.warning("Rejected shop configuration", errors=messages)
                raise BookingValidationError(messages)

            for field, value in changes.items():
                setattr(config, field, value)
            await commit_or_raise(self.db)

        logger.info("Shop configuration updated", fields=sorted(changes))
        await self.db.refresh(config)
        return config

    async def toggle_shop(self) -> ShopConfig:
        """Flip the accept/reject switch for new bookings."""
        async with self.locks.acquire(SHOP_CONFIG_LOCK_KEY):
            config = await self._fresh_config()
            config.is_open = not config.is_open
            await commit_or_raise(self.db)
        logger.info("Shop toggled", is_open=config.is_open)
        return config

    async def release_client(self, client_name: str) -> ShopConfig:
        """Exempt a client from cooldown. No-op if already released."""
        key = ClientKey.from_name(client_name)
        async with self.locks.acquire(SHOP_CONFIG_LOCK_KEY):
            config = await self._fresh_config()
            current = list(config.released_clients or [])
            if any(key.matches(name) for name in current):
                return config
            config.released_clients = current + [str(key)]
            await commit_or_raise(self.db)
        logger.info("Client released from cooldown", client=str(key))
        return config

    async def unrelease_client(self, client_name: str) -> ShopConfig:
        """Remove a cooldown exemption. No-op if the client is not released."""
        key = ClientKey.from_name(client_name)
        async with self.locks.acquire(SHOP_CONFIG_LOCK_KEY):
            config = await self._fresh_config()
            current = list(config.released_clients or [])
            remaining = [name for name in current if not key.matches(name)]
            if len(remaining) == len(current):
                return config
            config.released_clients = remaining
            await commit_or_raise(self.db)
        logger.info("Client cooldown exemption removed", client=str(key))
        return config

    async def block_date(self, day: date) -> ShopConfig:
        value = format_iso_date(day)
        async with self.locks.acquire(SHOP_CONFIG_LOCK_KEY):
            config = await self._fresh_config()
            current = list(config.blocked_dates or [])
            if value in current:
                return config
            config.blocked_dates = sorted(current + [value])
            await commit_or_raise(self.db)
        logger.info("Date blocked", date=value)
        return config

    async def unblock_date(self, day: date) -> ShopConfig:
        value = format_iso_date(day)
        async with self.locks.acquire(SHOP_CONFIG_LOCK_KEY):
            config = await self._fresh_config()
            current = list(config.blocked_dates or [])
            if value not in current:
                return config
            config.blocked_dates = [d for d in current if d != value]
            await commit_or_raise(self.db)
        logger.info("Date unblocked", date=value)
        return config
