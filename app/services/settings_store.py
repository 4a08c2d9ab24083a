"""Platform settings stored in the database and read on every use."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import PlatformSetting

logger = logging.getLogger(__name__)

CANCELLATION_FEE = "cancellation_fee"


async def get_setting(session: AsyncSession, key: str) -> str | None:
    result = await session.execute(select(PlatformSetting.value).where(PlatformSetting.key == key))
    return result.scalar_one_or_none()


async def get_setting_number(session: AsyncSession, key: str, fallback: float = 0) -> float:
    value = await get_setting(session, key)
    if not value:
        return fallback
    try:
        return float(value)
    except ValueError:
        logger.warning("Setting %s has non-numeric value %r, using %s", key, value, fallback)
        return fallback


async def upsert_setting(
    session: AsyncSession, key: str, value: str, description: str | None = None
) -> PlatformSetting:
    result = await session.execute(select(PlatformSetting).where(PlatformSetting.key == key))
    setting = result.scalar_one_or_none()
    if setting is None:
        setting = PlatformSetting(key=key, value=value, description=description)
        session.add(setting)
    else:
        setting.value = value
        if description:
            setting.description = description
    await session.commit()
    logger.info("Setting %s = %s", key, value)
    return setting
