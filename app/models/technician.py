import uuid

from sqlalchemy import JSON, Boolean, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class Technician(Base):
    __tablename__ = "technicians"

    user_id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255))
    specialties: Mapped[list[str]] = mapped_column(JSON, default=list)
    # Online toggle
    active: Mapped[bool] = mapped_column(Boolean, default=False)
    # Set once the platform has vetted the technician
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    # Owned by the wallet service; only read here to derive the blocked signal
    wallet_balance: Mapped[float] = mapped_column(Float, default=0)
    rating: Mapped[float] = mapped_column(Float, default=0)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
