import uuid
from datetime import datetime

from sqlalchemy import JSON, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utcnow

_ACTIVE_STATUS_CLAUSE = "status IN ('accepted', 'in_progress')"


class ServiceRequest(Base):
    __tablename__ = "service_requests"
    __table_args__ = (
        # Store-level backstop for the one-active-job rule
        Index(
            "uq_service_requests_active_technician",
            "technician_id",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_CLAUSE),
            sqlite_where=text(_ACTIVE_STATUS_CLAUSE),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(index=True)
    technician_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("technicians.user_id"), nullable=True, index=True
    )
    category_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service_categories.id"))
    urgency: Mapped[str] = mapped_column(String(20), default="normal")

    scheduling_type: Mapped[str] = mapped_column(String(20), default="now")
    scheduled_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    scheduled_time: Mapped[str | None] = mapped_column(String(5), nullable=True)

    description: Mapped[str] = mapped_column(Text)
    address: Mapped[str] = mapped_column(String(500))
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    photos: Mapped[list[str]] = mapped_column(JSON, default=list)
    audio_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    base_price: Mapped[float] = mapped_column(Float)
    extras: Mapped[list[dict]] = mapped_column(JSON, default=list)
    total_price: Mapped[float] = mapped_column(Float)
    quote_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    quote_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    quote_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    completion_code: Mapped[str | None] = mapped_column(String(12), nullable=True)
    completion_photos: Mapped[list[str]] = mapped_column(JSON, default=list)

    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancellation_fee: Mapped[float] = mapped_column(Float, default=0)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    quote_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    quote_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

