import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_notifier
from app.db.session import get_session
from app.schemas.service_request import (
    CancelIn,
    CancelOut,
    ClientActionIn,
    ClientServiceRequestOut,
    CompleteIn,
    CreateRequestIn,
    RateIn,
    RateOut,
    SendQuoteIn,
    ServiceRequestOut,
    TechnicianActionIn,
    serialize_request,
)
from app.services import cancellation, completion, exclusivity, quotes, ratings, requests
from app.services.errors import ForbiddenError
from app.services.lifecycle import ActorRole
from app.services.notifications import NotificationSink
from app.services.store import get_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/requests", tags=["requests"])


def _view(request, role: ActorRole) -> dict:
    return serialize_request(request, include_code=role == ActorRole.CLIENT)


@router.post("", status_code=201, response_model=ClientServiceRequestOut)
async def create_request(
    body: CreateRequestIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await requests.create_request(
        session,
        **body.model_dump(),
        notifier=notifier,
    )
    return ClientServiceRequestOut.model_validate(request)


@router.get("")
async def list_requests(
    viewer_id: uuid.UUID = Query(...),
    role: ActorRole = Query(...),
    session: AsyncSession = Depends(get_session),
):
    rows = await requests.list_requests_for_viewer(session, viewer_id, role)
    return [_view(r, role) for r in rows]


@router.get("/{request_id}")
async def read_request(
    request_id: uuid.UUID,
    viewer_id: uuid.UUID = Query(...),
    role: ActorRole = Query(...),
    session: AsyncSession = Depends(get_session),
):
    request = await get_request(session, request_id)
    if role == ActorRole.CLIENT and request.client_id != viewer_id:
        raise ForbiddenError("Not your request.")
    if role == ActorRole.TECHNICIAN and request.technician_id not in (None, viewer_id):
        raise ForbiddenError("Not your request.")
    return _view(request, role)


@router.post("/{request_id}/accept", response_model=ServiceRequestOut)
async def accept_request(
    request_id: uuid.UUID,
    body: TechnicianActionIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await exclusivity.accept_request(session, request_id, body.technician_id, notifier=notifier)
    return ServiceRequestOut.model_validate(request)


@router.post("/{request_id}/quote", response_model=ServiceRequestOut)
async def send_quote(
    request_id: uuid.UUID,
    body: SendQuoteIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await quotes.send_quote(
        session, request_id, body.technician_id, body.amount, body.description, notifier=notifier
    )
    return ServiceRequestOut.model_validate(request)


@router.post("/{request_id}/quote/approve", response_model=ClientServiceRequestOut)
async def approve_quote(
    request_id: uuid.UUID,
    body: ClientActionIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await quotes.approve_quote(session, request_id, body.client_id, notifier=notifier)
    return ClientServiceRequestOut.model_validate(request)


@router.post("/{request_id}/quote/reject", response_model=ClientServiceRequestOut)
async def reject_quote(
    request_id: uuid.UUID,
    body: ClientActionIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await quotes.reject_quote(session, request_id, body.client_id, notifier=notifier)
    return ClientServiceRequestOut.model_validate(request)


@router.post("/{request_id}/start", response_model=ServiceRequestOut)
async def start_request(
    request_id: uuid.UUID,
    body: TechnicianActionIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await requests.start_request(session, request_id, body.technician_id, notifier=notifier)
    return ServiceRequestOut.model_validate(request)


@router.post("/{request_id}/complete", response_model=ServiceRequestOut)
async def complete_request(
    request_id: uuid.UUID,
    body: CompleteIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await completion.complete_request(
        session,
        request_id,
        body.technician_id,
        body.completion_code,
        extras=[extra.model_dump() for extra in body.extras],
        completion_photos=body.completion_photos,
        notifier=notifier,
    )
    return ServiceRequestOut.model_validate(request)


@router.post("/{request_id}/cancel", response_model=CancelOut)
async def cancel_request(
    request_id: uuid.UUID,
    body: CancelIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    request = await cancellation.cancel_request(
        session, request_id, body.actor_id, body.actor_role, body.reason, notifier=notifier
    )
    return CancelOut(request_id=request.id, status=request.status, cancellation_fee=request.cancellation_fee)


@router.post("/{request_id}/rate", response_model=RateOut)
async def rate_request(
    request_id: uuid.UUID,
    body: RateIn,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
):
    result = await ratings.rate_request(
        session, request_id, body.client_id, body.rating, body.feedback, notifier=notifier
    )
    return RateOut(
        request_id=result.request.id,
        rating=result.request.rating,
        feedback=result.request.feedback,
        technician_rating=result.technician_rating,
        technician_review_count=result.technician_review_count,
    )
