"""Quote negotiation for quote-priced services.

null -> sent -> approved | rejected, and rejected -> sent for a re-quote.
A quote on a pending request also accepts it, in the same conditional write.
"""

import logging
import uuid

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ServiceRequest
from app.models.base import utcnow
from app.services.catalog import category_name, category_takes_quotes
from app.services.change_feed import feed
from app.services.errors import ForbiddenError, InvalidTransition, ValidationError
from app.services.exclusivity import claim_pending_request
from app.services.ledger import WalletLedger
from app.services.lifecycle import QuoteStatus, RequestStatus, ensure_quote_transition
from app.services.notifications import (
    NotificationSink,
    format_quote_approved,
    format_quote_received,
    format_quote_rejected,
)
from app.services.pricing import compute_total
from app.services.store import conditional_update, get_request
from app.services.visibility import get_technician

logger = logging.getLogger(__name__)


async def send_quote(
    session: AsyncSession,
    request_id: uuid.UUID,
    technician_id: uuid.UUID,
    amount: float,
    description: str = "",
    notifier: NotificationSink | None = None,
    ledger: WalletLedger | None = None,
) -> ServiceRequest:
    if amount is None or amount <= 0:
        raise ValidationError("Quote amount must be positive.")

    request = await get_request(session, request_id)
    technician = await get_technician(session, technician_id)

    if not await category_takes_quotes(session, request.category_id):
        raise ValidationError("This service has a fixed price and does not take quotes.")

    quote_values = {
        "quote_amount": amount,
        "quote_description": description,
        "quote_status": QuoteStatus.SENT.value,
        "quote_sent_at": utcnow(),
        "total_price": compute_total(request.base_price, request.urgency, quote_amount=amount),
    }

    if request.status == RequestStatus.PENDING:
        request = await claim_pending_request(session, request, technician, ledger=ledger, **quote_values)
    elif request.status == RequestStatus.ACCEPTED:
        if request.technician_id != technician_id:
            raise ForbiddenError("Only the assigned technician can quote this request.")
        ensure_quote_transition(request.quote_status, QuoteStatus.SENT)
        updated = await conditional_update(
            session,
            request_id,
            [
                ServiceRequest.status == RequestStatus.ACCEPTED,
                ServiceRequest.technician_id == technician_id,
                or_(
                    ServiceRequest.quote_status.is_(None),
                    ServiceRequest.quote_status == QuoteStatus.REJECTED,
                ),
            ],
            quote_values,
        )
        if not updated:
            await session.rollback()
            raise InvalidTransition("The quote changed in the meantime, reload and try again.")
        request = await get_request(session, request_id)
    else:
        raise InvalidTransition(f"Cannot quote a {request.status} request.")

    name = await category_name(session, request.category_id)
    await session.commit()

    logger.info("Quote of %s sent on %s by %s", amount, request_id, technician_id)
    feed.publish("UPDATE", request)
    if notifier:
        await notifier.emit(format_quote_received(request.client_id, request.id, technician.name, amount, name))
    return request


async def _answer_quote(
    session: AsyncSession,
    request_id: uuid.UUID,
    client_id: uuid.UUID,
    target: QuoteStatus,
) -> ServiceRequest:
    request = await get_request(session, request_id)
    if request.client_id != client_id:
        raise ForbiddenError("Only the client who made the request can answer its quote.")
    if request.status != RequestStatus.ACCEPTED:
        raise InvalidTransition(f"Cannot answer a quote on a {request.status} request.")
    ensure_quote_transition(request.quote_status, target)

    values: dict = {"quote_status": target.value}
    if target == QuoteStatus.APPROVED:
        values["quote_approved_at"] = utcnow()

    updated = await conditional_update(
        session,
        request_id,
        [
            ServiceRequest.client_id == client_id,
            ServiceRequest.status == RequestStatus.ACCEPTED,
            ServiceRequest.quote_status == QuoteStatus.SENT,
        ],
        values,
    )
    if not updated:
        await session.rollback()
        raise InvalidTransition("The quote changed in the meantime, reload and try again.")

    request = await get_request(session, request_id)
    await session.commit()
    logger.info("Quote on %s %s by client %s", request_id, target, client_id)
    feed.publish("UPDATE", request)
    return request


async def approve_quote(
    session: AsyncSession,
    request_id: uuid.UUID,
    client_id: uuid.UUID,
    notifier: NotificationSink | None = None,
) -> ServiceRequest:
    request = await _answer_quote(session, request_id, client_id, QuoteStatus.APPROVED)
    if notifier and request.technician_id:
        name = await category_name(session, request.category_id)
        await notifier.emit(format_quote_approved(request.technician_id, request.id, request.quote_amount, name))
    return request


async def reject_quote(
    session: AsyncSession,
    request_id: uuid.UUID,
    client_id: uuid.UUID,
    notifier: NotificationSink | None = None,
) -> ServiceRequest:
    """Reject the quote. The technician stays assigned and may send a new one."""
    request = await _answer_quote(session, request_id, client_id, QuoteStatus.REJECTED)
    if notifier and request.technician_id:
        await notifier.emit(format_quote_rejected(request.technician_id, request.id, request.quote_amount))
    return request
