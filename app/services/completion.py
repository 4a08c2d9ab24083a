import logging
import uuid
from collections.abc import Iterable, Mapping

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ServiceRequest
from app.models.base import utcnow
from app.services.catalog import category_name
from app.services.change_feed import feed
from app.services.errors import ForbiddenError, InvalidCompletionCode, InvalidTransition, ValidationError
from app.services.lifecycle import QuoteStatus, RequestStatus, ensure_transition
from app.services.notifications import NotificationSink, format_service_completed
from app.services.pricing import compute_total
from app.services.store import conditional_update, get_request

logger = logging.getLogger(__name__)


async def validate_completion_code(session: AsyncSession, request_id: uuid.UUID, code: str) -> bool:
    """Check the code in the database; the stored code never leaves the store here."""
    stmt = select(
        exists().where(
            ServiceRequest.id == request_id,
            ServiceRequest.completion_code.is_not(None),
            ServiceRequest.completion_code == code,
        )
    )
    return bool(await session.scalar(stmt))


def _normalize_extras(extras: Iterable[Mapping] | None) -> list[dict]:
    normalized = []
    for extra in extras or []:
        if not extra.get("name"):
            raise ValidationError("Every extra needs a name.")
        try:
            price = float(extra.get("price") or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid price for extra {extra.get('name')!r}.")
        if price < 0:
            raise ValidationError("Extra prices cannot be negative.")
        normalized.append({**extra, "price": price})
    return normalized


async def complete_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    technician_id: uuid.UUID,
    completion_code: str | None,
    extras: Iterable[Mapping] | None = None,
    completion_photos: list[str] | None = None,
    notifier: NotificationSink | None = None,
) -> ServiceRequest:
    """Verify the client's code, recompute the price and mark the job completed."""
    code = (completion_code or "").strip()
    if not code:
        raise ValidationError("Completion code is required.")
    extras = _normalize_extras(extras)

    request = await get_request(session, request_id)
    if request.technician_id != technician_id:
        raise ForbiddenError("Only the assigned technician can complete this request.")
    ensure_transition(request.status, RequestStatus.COMPLETED)

    if not await validate_completion_code(session, request_id, code):
        logger.info("Invalid completion code for %s", request_id)
        raise InvalidCompletionCode()

    quote_amount = request.quote_amount if request.quote_status == QuoteStatus.APPROVED else None
    values: dict = {
        "status": RequestStatus.COMPLETED.value,
        "completed_at": utcnow(),
        "total_price": compute_total(request.base_price, request.urgency, extras, quote_amount=quote_amount),
    }
    if extras:
        values["extras"] = extras
    if completion_photos:
        values["completion_photos"] = list(completion_photos)

    updated = await conditional_update(
        session,
        request_id,
        [
            ServiceRequest.status == RequestStatus.IN_PROGRESS,
            ServiceRequest.technician_id == technician_id,
            ServiceRequest.completion_code == code,
        ],
        values,
    )
    if not updated:
        await session.rollback()
        raise InvalidTransition("The request changed in the meantime, reload and try again.")

    request = await get_request(session, request_id)
    name = await category_name(session, request.category_id)
    await session.commit()

    logger.info("Request %s completed, total %s", request_id, request.total_price)
    feed.publish("UPDATE", request)
    if notifier:
        await notifier.emit(format_service_completed(request.client_id, request.id, request.total_price, name))
    return request
