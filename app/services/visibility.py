"""Which pending requests a technician is offered."""

import logging
import uuid

from sqlalchemy import and_, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ServiceRequest, Specialty, Technician
from app.services.errors import NotFoundError
from app.services.ledger import TechnicianBalanceLedger, WalletLedger
from app.services.lifecycle import RequestStatus

logger = logging.getLogger(__name__)


async def get_technician(session: AsyncSession, technician_id: uuid.UUID) -> Technician:
    technician = await session.get(Technician, technician_id, populate_existing=True)
    if technician is None:
        raise NotFoundError(f"Technician {technician_id} not found.")
    return technician


async def technician_category_ids(session: AsyncSession, specialties: list[str]) -> set[uuid.UUID]:
    """Map free-text specialty tags to catalog category ids (case-insensitive name match)."""
    names = {s.strip().lower() for s in specialties if s and s.strip()}
    if not names:
        return set()
    result = await session.execute(
        select(Specialty.category_id).where(
            func.lower(Specialty.name).in_(names),
            Specialty.active.is_(True),
            Specialty.category_id.is_not(None),
        )
    )
    return set(result.scalars().all())


async def list_visible_requests(
    session: AsyncSession,
    technician_id: uuid.UUID,
    ledger: WalletLedger | None = None,
) -> list[ServiceRequest]:
    """Pending requests offered to a technician, newest first.

    Direct requests are always offered. Broadcast requests are offered to
    generalists (no specialties) or when the request category is one the
    technician's specialties map to. Offline or wallet-blocked technicians
    are offered nothing.
    """
    technician = await get_technician(session, technician_id)
    ledger = ledger or TechnicianBalanceLedger(session)

    if not technician.active:
        logger.info("Technician %s is offline, no candidates", technician_id)
        return []
    if await ledger.is_blocked(technician_id):
        logger.info("Technician %s is wallet-blocked, no candidates", technician_id)
        return []

    specialties = technician.specialties or []
    if not specialties:
        broadcast_match = ServiceRequest.technician_id.is_(None)
    else:
        category_ids = await technician_category_ids(session, specialties)
        broadcast_match = and_(
            ServiceRequest.technician_id.is_(None),
            ServiceRequest.category_id.in_(category_ids) if category_ids else false(),
        )

    stmt = (
        select(ServiceRequest)
        .where(
            ServiceRequest.status == RequestStatus.PENDING,
            or_(ServiceRequest.technician_id == technician_id, broadcast_match),
        )
        .order_by(ServiceRequest.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
