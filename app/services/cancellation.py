import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import ServiceRequest
from app.models.base import utcnow
from app.services.change_feed import feed
from app.services.errors import ForbiddenError, InvalidTransition, ValidationError
from app.services.lifecycle import ActorRole, RequestStatus, ensure_transition
from app.services.notifications import NotificationSink, format_service_cancelled
from app.services.settings_store import CANCELLATION_FEE, get_setting_number
from app.services.store import conditional_update, get_request

logger = logging.getLogger(__name__)


def cancellation_fee_applies(actor_role: str, status: str) -> bool:
    """Only a client cancelling after the technician started (arrived) pays a fee."""
    return actor_role == ActorRole.CLIENT and status == RequestStatus.IN_PROGRESS


async def current_cancellation_fee(session: AsyncSession) -> float:
    return await get_setting_number(session, CANCELLATION_FEE, settings.default_cancellation_fee)


def _ensure_party(request: ServiceRequest, actor_id: uuid.UUID, actor_role: ActorRole) -> None:
    if actor_role == ActorRole.ADMIN:
        return
    if actor_role == ActorRole.CLIENT and request.client_id == actor_id:
        return
    if actor_role == ActorRole.TECHNICIAN and request.technician_id == actor_id:
        return
    raise ForbiddenError("Only the client or the assigned technician can cancel this request.")


async def cancel_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    actor_role: ActorRole | str,
    reason: str,
    notifier: NotificationSink | None = None,
) -> ServiceRequest:
    """Cancel a non-terminal request. The computed fee is stored on the row."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A cancellation reason is required.")
    actor_role = ActorRole(actor_role)

    request = await get_request(session, request_id)
    _ensure_party(request, actor_id, actor_role)
    ensure_transition(request.status, RequestStatus.CANCELLED)

    observed_status = request.status
    fee = 0.0
    if cancellation_fee_applies(actor_role, observed_status):
        fee = await current_cancellation_fee(session)

    updated = await conditional_update(
        session,
        request_id,
        [ServiceRequest.status == observed_status],
        {
            "status": RequestStatus.CANCELLED.value,
            "cancelled_at": utcnow(),
            "cancellation_reason": reason,
            "cancelled_by": actor_role.value,
            "cancellation_fee": fee,
        },
    )
    if not updated:
        await session.rollback()
        raise InvalidTransition("The request changed in the meantime, reload and try again.")

    request = await get_request(session, request_id)
    await session.commit()

    logger.info("Request %s cancelled by %s (fee %s)", request_id, actor_role, fee)
    feed.publish("UPDATE", request)
    if notifier:
        counterpart = request.technician_id if actor_role == ActorRole.CLIENT else request.client_id
        if counterpart:
            await notifier.emit(format_service_cancelled(counterpart, request.id, actor_role.value, reason))
    return request
