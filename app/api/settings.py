from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.catalog import SettingIn, SettingOut
from app.services.errors import NotFoundError
from app.services.settings_store import get_setting, upsert_setting

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/{key}", response_model=SettingOut)
async def read_setting(key: str, session: AsyncSession = Depends(get_session)):
    value = await get_setting(session, key)
    if value is None:
        raise NotFoundError(f"Setting {key} not found.")
    return SettingOut(key=key, value=value)


@router.put("/{key}", response_model=SettingOut)
async def write_setting(key: str, body: SettingIn, session: AsyncSession = Depends(get_session)):
    setting = await upsert_setting(session, key, body.value, body.description)
    return SettingOut.model_validate(setting)
