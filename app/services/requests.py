import logging
import secrets
import string
import uuid
from datetime import date, time

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import ServiceRequest, Technician
from app.models.base import utcnow
from app.services.catalog import get_category, resolve_service
from app.services.change_feed import feed
from app.services.errors import ForbiddenError, InvalidTransition, ValidationError
from app.services.ledger import TechnicianBalanceLedger, WalletLedger
from app.services.lifecycle import (
    ActorRole,
    QuoteStatus,
    RequestStatus,
    SchedulingType,
    Urgency,
    ensure_transition,
)
from app.services.matching import SpecialtyMatcher, default_matcher
from app.services.notifications import (
    NotificationSink,
    format_broadcast_request,
    format_direct_request,
    format_service_started,
)
from app.services.pricing import compute_total
from app.services.store import conditional_update, get_request
from app.services.visibility import get_technician

logger = logging.getLogger(__name__)


def generate_completion_code(length: int | None = None) -> str:
    length = length or settings.completion_code_length
    return "".join(secrets.choice(string.digits) for _ in range(length))


def _format_date(value: date | str | None) -> str | None:
    if isinstance(value, date):
        return value.isoformat()
    return value or None


def _format_time(value: time | str | None) -> str | None:
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value or None


async def create_request(
    session: AsyncSession,
    client_id: uuid.UUID,
    category_id: uuid.UUID,
    description: str,
    address: str,
    urgency: str = Urgency.NORMAL,
    scheduling_type: str = SchedulingType.NOW,
    scheduled_date: date | str | None = None,
    scheduled_time: time | str | None = None,
    technician_id: uuid.UUID | None = None,
    service_id: uuid.UUID | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    photos: list[str] | None = None,
    audio_url: str | None = None,
    notifier: NotificationSink | None = None,
    matcher: SpecialtyMatcher | None = None,
    ledger: WalletLedger | None = None,
) -> ServiceRequest:
    """Create a pending request and notify the technicians who should hear about it."""
    scheduled_date = _format_date(scheduled_date)
    scheduled_time = _format_time(scheduled_time)

    missing: list[str] = []
    if not (description or "").strip():
        missing.append("description")
    if not (address or "").strip():
        missing.append("address")
    if scheduling_type == SchedulingType.SCHEDULED:
        if not scheduled_date:
            missing.append("scheduled_date")
        if not scheduled_time:
            missing.append("scheduled_time")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.")

    try:
        urgency = Urgency(urgency)
        scheduling_type = SchedulingType(scheduling_type)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if scheduling_type == SchedulingType.NOW and (scheduled_date or scheduled_time):
        raise ValidationError("Only scheduled requests take a date and time.")

    category = await get_category(session, category_id)
    direct_technician = await get_technician(session, technician_id) if technician_id else None
    service = await resolve_service(session, category_id, service_id)

    base_price = category.base_price
    if service is not None and service.id == service_id and service.base_price is not None:
        base_price = service.base_price

    request = ServiceRequest(
        client_id=client_id,
        technician_id=technician_id,
        category_id=category_id,
        urgency=urgency.value,
        scheduling_type=scheduling_type.value,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        description=description.strip(),
        address=address.strip(),
        latitude=latitude,
        longitude=longitude,
        photos=list(photos or []),
        audio_url=audio_url,
        base_price=base_price,
        extras=[],
        total_price=compute_total(base_price, urgency),
        status=RequestStatus.PENDING.value,
        completion_code=generate_completion_code(),
        completion_photos=[],
        cancellation_fee=0,
    )
    session.add(request)
    await session.commit()

    logger.info(
        "Request %s created by %s (%s, %s)",
        request.id, client_id, "direct" if technician_id else "broadcast", urgency,
    )
    feed.publish("INSERT", request)

    if notifier:
        if direct_technician is not None:
            await notifier.emit(format_direct_request(direct_technician.user_id, request.id, client_id))
        else:
            service_name = service.name if service else category.name
            price_type = service.price_type if service else "fixed"
            recipients = await find_technicians_to_notify(
                session, service_name, matcher=matcher, ledger=ledger
            )
            await notifier.emit(
                *[
                    format_broadcast_request(t.user_id, request.id, service_name, category.name, price_type)
                    for t in recipients
                ]
            )
    return request


async def find_technicians_to_notify(
    session: AsyncSession,
    service_name: str,
    matcher: SpecialtyMatcher | None = None,
    ledger: WalletLedger | None = None,
) -> list[Technician]:
    """Online, verified, unblocked technicians whose free-text specialties fuzzy-match the service."""
    matcher = matcher or default_matcher
    ledger = ledger or TechnicianBalanceLedger(session)

    result = await session.execute(
        select(Technician).where(Technician.active.is_(True), Technician.verified.is_(True))
    )
    recipients: list[Technician] = []
    for technician in result.scalars().all():
        if not matcher.matches(service_name, technician.specialties or []):
            continue
        if await ledger.is_blocked(technician.user_id):
            continue
        recipients.append(technician)
    logger.info("Service %r matched %d technician(s)", service_name, len(recipients))
    return recipients


async def start_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    technician_id: uuid.UUID,
    notifier: NotificationSink | None = None,
) -> ServiceRequest:
    request = await get_request(session, request_id)
    if request.technician_id != technician_id:
        raise ForbiddenError("Only the assigned technician can start this request.")
    ensure_transition(request.status, RequestStatus.IN_PROGRESS)
    if request.quote_status in (QuoteStatus.SENT, QuoteStatus.REJECTED):
        raise InvalidTransition("The client must approve the quote before work starts.")

    updated = await conditional_update(
        session,
        request_id,
        [
            ServiceRequest.status == RequestStatus.ACCEPTED,
            ServiceRequest.technician_id == technician_id,
        ],
        {"status": RequestStatus.IN_PROGRESS.value, "started_at": utcnow()},
    )
    if not updated:
        await session.rollback()
        raise InvalidTransition("The request changed in the meantime, reload and try again.")

    request = await get_request(session, request_id)
    await session.commit()

    logger.info("Request %s started by %s", request_id, technician_id)
    feed.publish("UPDATE", request)
    if notifier:
        await notifier.emit(format_service_started(request.client_id, request.id))
    return request


async def list_requests_for_viewer(
    session: AsyncSession,
    viewer_id: uuid.UUID,
    role: ActorRole | str,
) -> list[ServiceRequest]:
    """Requests a viewer may list, newest first.

    Clients see their own requests. Technicians see broadcast pending requests
    plus anything addressed or assigned to them. Admins see everything.
    """
    role = ActorRole(role)
    stmt = select(ServiceRequest).order_by(ServiceRequest.created_at.desc())
    if role == ActorRole.CLIENT:
        stmt = stmt.where(ServiceRequest.client_id == viewer_id)
    elif role == ActorRole.TECHNICIAN:
        stmt = stmt.where(
            or_(
                and_(
                    ServiceRequest.status == RequestStatus.PENDING,
                    ServiceRequest.technician_id.is_(None),
                ),
                ServiceRequest.technician_id == viewer_id,
            )
        )
    result = await session.execute(stmt)
    return list(result.scalars().all())
