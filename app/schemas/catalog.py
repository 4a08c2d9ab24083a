import uuid

from pydantic import BaseModel, ConfigDict, Field


class TechnicianOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    name: str
    specialties: list[str] = Field(default_factory=list)
    active: bool
    verified: bool
    rating: float
    review_count: int
    wallet_blocked: bool = False
    active_jobs: int = 0


class OnlineIn(BaseModel):
    active: bool


class SettingIn(BaseModel):
    value: str
    description: str | None = None


class SettingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str
    description: str | None = None
