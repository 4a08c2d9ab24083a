"""One active job per technician.

Two mechanisms, both required: a predicate check that gives the technician a
clear "you already have a job" answer, and a write conditioned on the row still
being pending, which is what actually settles a race between technicians. A
partial unique index on active rows backs up the predicate against a
technician racing themselves.
"""

import logging
import uuid

from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ServiceRequest, Technician
from app.models.base import utcnow
from app.services.change_feed import feed
from app.services.errors import AlreadyActive, AlreadyTaken, InvalidTransition, WalletBlocked
from app.services.ledger import TechnicianBalanceLedger, WalletLedger
from app.services.lifecycle import ACTIVE_STATUSES, RequestStatus
from app.services.notifications import NotificationSink, format_request_accepted
from app.services.store import conditional_update, get_request
from app.services.visibility import get_technician

logger = logging.getLogger(__name__)


async def technician_has_active_job(session: AsyncSession, technician_id: uuid.UUID) -> bool:
    stmt = select(
        exists().where(
            ServiceRequest.technician_id == technician_id,
            ServiceRequest.status.in_(ACTIVE_STATUSES),
        )
    )
    return bool(await session.scalar(stmt))


async def active_job_count(session: AsyncSession, technician_id: uuid.UUID) -> int:
    stmt = select(func.count(ServiceRequest.id)).where(
        ServiceRequest.technician_id == technician_id,
        ServiceRequest.status.in_(ACTIVE_STATUSES),
    )
    return int(await session.scalar(stmt) or 0)


async def claim_pending_request(
    session: AsyncSession,
    request: ServiceRequest,
    technician: Technician,
    ledger: WalletLedger | None = None,
    **extra_values,
) -> ServiceRequest:
    """Assign a pending request to a technician and move it to accepted.

    ``extra_values`` are written in the same conditional UPDATE (used by the
    quote flow). Raises WalletBlocked, AlreadyActive or AlreadyTaken without
    changing anything. Does not commit.
    """
    ledger = ledger or TechnicianBalanceLedger(session)
    technician_id = technician.user_id
    request_id = request.id

    if request.status != RequestStatus.PENDING:
        if request.status in ACTIVE_STATUSES and request.technician_id != technician_id:
            raise AlreadyTaken()
        raise InvalidTransition(f"Cannot accept a {request.status} request.")
    if request.technician_id is not None and request.technician_id != technician_id:
        # Direct request addressed to someone else
        raise AlreadyTaken()

    if await ledger.is_blocked(technician_id):
        raise WalletBlocked()
    if await technician_has_active_job(session, technician_id):
        raise AlreadyActive()

    values = {
        "technician_id": technician_id,
        "status": RequestStatus.ACCEPTED.value,
        "accepted_at": utcnow(),
        **extra_values,
    }
    try:
        claimed = await conditional_update(
            session,
            request_id,
            [
                ServiceRequest.status == RequestStatus.PENDING,
                or_(
                    ServiceRequest.technician_id.is_(None),
                    ServiceRequest.technician_id == technician_id,
                ),
            ],
            values,
        )
    except IntegrityError:
        await session.rollback()
        logger.info("Technician %s already holds an active job (index)", technician_id)
        raise AlreadyActive()

    if not claimed:
        await session.rollback()
        logger.info("Technician %s lost the race for request %s", technician_id, request_id)
        raise AlreadyTaken()

    return await get_request(session, request_id)


async def accept_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    technician_id: uuid.UUID,
    notifier: NotificationSink | None = None,
    ledger: WalletLedger | None = None,
) -> ServiceRequest:
    request = await get_request(session, request_id)
    technician = await get_technician(session, technician_id)

    request = await claim_pending_request(session, request, technician, ledger=ledger)
    await session.commit()

    logger.info("Request %s accepted by %s", request_id, technician_id)
    feed.publish("UPDATE", request)
    if notifier:
        await notifier.emit(format_request_accepted(request.client_id, request.id, technician.name))
    return request
