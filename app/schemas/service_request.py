import uuid
from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, Field

from app.services.lifecycle import ActorRole, SchedulingType, Urgency


class Extra(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)


class CreateRequestIn(BaseModel):
    client_id: uuid.UUID
    category_id: uuid.UUID
    service_id: uuid.UUID | None = None
    description: str
    address: str
    urgency: Urgency = Urgency.NORMAL
    scheduling_type: SchedulingType = SchedulingType.NOW
    scheduled_date: date | None = None
    scheduled_time: time | None = None
    latitude: float | None = None
    longitude: float | None = None
    photos: list[str] = Field(default_factory=list)
    audio_url: str | None = None
    technician_id: uuid.UUID | None = None


class TechnicianActionIn(BaseModel):
    technician_id: uuid.UUID


class ClientActionIn(BaseModel):
    client_id: uuid.UUID


class SendQuoteIn(BaseModel):
    technician_id: uuid.UUID
    amount: float = Field(gt=0)
    description: str = ""


class CompleteIn(BaseModel):
    technician_id: uuid.UUID
    completion_code: str | None = None
    extras: list[Extra] = Field(default_factory=list)
    completion_photos: list[str] = Field(default_factory=list)


class CancelIn(BaseModel):
    actor_id: uuid.UUID
    actor_role: ActorRole
    reason: str = Field(min_length=1)


class CancelOut(BaseModel):
    request_id: uuid.UUID
    status: str
    cancellation_fee: float


class RateIn(BaseModel):
    client_id: uuid.UUID
    rating: int = Field(ge=1, le=5)
    feedback: str | None = None


class RateOut(BaseModel):
    request_id: uuid.UUID
    rating: int
    feedback: str | None = None
    technician_rating: float
    technician_review_count: int


class ServiceRequestOut(BaseModel):
    """Request as seen by technicians and admins (no completion code)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    technician_id: uuid.UUID | None = None
    category_id: uuid.UUID
    urgency: str
    scheduling_type: str
    scheduled_date: str | None = None
    scheduled_time: str | None = None
    description: str
    address: str
    latitude: float | None = None
    longitude: float | None = None
    photos: list[str] = Field(default_factory=list)
    audio_url: str | None = None
    base_price: float
    extras: list[Extra] = Field(default_factory=list)
    total_price: float
    quote_amount: float | None = None
    quote_description: str | None = None
    status: str
    quote_status: str | None = None
    completion_photos: list[str] = Field(default_factory=list)
    rating: int | None = None
    feedback: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    cancellation_fee: float = 0
    created_at: datetime
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    quote_sent_at: datetime | None = None
    quote_approved_at: datetime | None = None


class ClientServiceRequestOut(ServiceRequestOut):
    """The client's own view, which includes the code they hand to the technician."""

    completion_code: str | None = None


def serialize_request(request, include_code: bool = False) -> dict:
    schema = ClientServiceRequestOut if include_code else ServiceRequestOut
    return schema.model_validate(request).model_dump(mode="json")
