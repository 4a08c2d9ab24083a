import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.catalog import OnlineIn, TechnicianOut
from app.schemas.service_request import ServiceRequestOut
from app.services.exclusivity import active_job_count
from app.services.ledger import TechnicianBalanceLedger
from app.services.visibility import get_technician, list_visible_requests

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/technicians", tags=["technicians"])


async def _technician_view(session: AsyncSession, technician_id: uuid.UUID) -> TechnicianOut:
    technician = await get_technician(session, technician_id)
    view = TechnicianOut.model_validate(technician)
    view.wallet_blocked = await TechnicianBalanceLedger(session).is_blocked(technician_id)
    view.active_jobs = await active_job_count(session, technician_id)
    return view


@router.get("/{technician_id}", response_model=TechnicianOut)
async def read_technician(technician_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    return await _technician_view(session, technician_id)


@router.post("/{technician_id}/online", response_model=TechnicianOut)
async def set_online(
    technician_id: uuid.UUID,
    body: OnlineIn,
    session: AsyncSession = Depends(get_session),
):
    """Go online to receive requests, or offline to stop."""
    technician = await get_technician(session, technician_id)
    technician.active = body.active
    await session.commit()
    logger.info("Technician %s is now %s", technician_id, "online" if body.active else "offline")
    return await _technician_view(session, technician_id)


@router.get("/{technician_id}/visible-requests", response_model=list[ServiceRequestOut])
async def visible_requests(technician_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    rows = await list_visible_requests(session, technician_id)
    return [ServiceRequestOut.model_validate(r) for r in rows]
