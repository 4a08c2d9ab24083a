"""Rating submission and technician rating aggregation.

Technician ratings are recomputed from every review on each submission; no
running totals are kept, so the aggregate cannot drift.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Review, ServiceRequest, Technician
from app.services.catalog import category_name
from app.services.change_feed import feed
from app.services.errors import AlreadyRated, ForbiddenError, InvalidTransition, ValidationError
from app.services.lifecycle import RequestStatus
from app.services.notifications import NotificationSink, format_new_rating
from app.services.store import conditional_update, get_request
from app.services.visibility import get_technician

logger = logging.getLogger(__name__)


@dataclass
class RatingResult:
    request: ServiceRequest
    technician_rating: float
    technician_review_count: int


def average_rating(ratings: list[int]) -> float:
    if not ratings:
        return 0.0
    return round(sum(ratings) / len(ratings), 2)


async def recompute_technician_rating(session: AsyncSession, technician: Technician) -> Technician:
    result = await session.execute(select(Review.rating).where(Review.technician_id == technician.user_id))
    ratings = list(result.scalars().all())
    technician.rating = average_rating(ratings)
    technician.review_count = len(ratings)
    return technician


async def rate_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    client_id: uuid.UUID,
    rating: int,
    feedback: str | None = None,
    notifier: NotificationSink | None = None,
) -> RatingResult:
    if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer from 1 to 5.")
    feedback = (feedback or "").strip() or None

    request = await get_request(session, request_id)
    if request.client_id != client_id:
        raise ForbiddenError("Only the client who made the request can rate it.")
    if request.status != RequestStatus.COMPLETED:
        raise InvalidTransition("Only completed requests can be rated.")
    if request.technician_id is None:
        raise ValidationError("This request has no technician to rate.")
    if request.rating is not None:
        raise AlreadyRated()

    technician = await get_technician(session, request.technician_id)

    stamped = await conditional_update(
        session,
        request_id,
        [ServiceRequest.status == RequestStatus.COMPLETED, ServiceRequest.rating.is_(None)],
        {"rating": rating, "feedback": feedback},
    )
    if not stamped:
        await session.rollback()
        raise AlreadyRated()

    existing = await session.scalar(select(Review.id).where(Review.service_request_id == request_id))
    if existing is None:
        session.add(
            Review(
                service_request_id=request_id,
                client_id=client_id,
                technician_id=technician.user_id,
                rating=rating,
                comment=feedback,
            )
        )
        await session.flush()
    else:
        logger.info("Review for %s already exists, not inserting another", request_id)

    await recompute_technician_rating(session, technician)
    request = await get_request(session, request_id)
    name = await category_name(session, request.category_id)
    await session.commit()

    logger.info(
        "Request %s rated %s; technician %s now %.2f over %d review(s)",
        request_id, rating, technician.user_id, technician.rating, technician.review_count,
    )
    feed.publish("UPDATE", request)
    if notifier:
        await notifier.emit(format_new_rating(technician.user_id, request.id, rating, feedback, name))
    return RatingResult(
        request=request,
        technician_rating=technician.rating,
        technician_review_count=technician.review_count,
    )
