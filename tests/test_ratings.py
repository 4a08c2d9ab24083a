import uuid

import pytest
from sqlalchemy import func, select

from conftest import make_request, make_technician, notifications_for, reload, reload_technician

from app.models import Review
from app.services.completion import complete_request
from app.services.errors import AlreadyRated, ForbiddenError, InvalidTransition, ValidationError
from app.services.exclusivity import accept_request
from app.services.ratings import average_rating, rate_request
from app.services.requests import start_request


@pytest.mark.parametrize(
    "ratings, expected",
    [([], 0.0), ([5], 5.0), ([5, 4], 4.5), ([5, 4, 4], 4.33), ([1, 2, 2], 1.67)],
)
def test_average_rating(ratings, expected):
    assert average_rating(ratings) == expected


async def _completed(session, category_id, tech, client):
    request = await make_request(session, category_id, client_id=client)
    code = request.completion_code
    await accept_request(session, request.id, tech)
    await start_request(session, request.id, tech)
    await complete_request(session, request.id, tech, code)
    return request.id


async def _review_count(session, request_id):
    return await session.scalar(
        select(func.count(Review.id)).where(Review.service_request_id == request_id)
    )


async def test_rating_updates_request_review_and_technician(session, catalog, notifier, session_factory):
    tech = await make_technician(session)
    client = uuid.uuid4()
    request_id = await _completed(session, catalog["plumbing"], tech, client)

    result = await rate_request(session, request_id, client, 5, "  Great job  ", notifier=notifier)

    assert result.request.rating == 5
    assert result.request.feedback == "Great job"
    assert result.technician_rating == 5.0
    assert result.technician_review_count == 1
    assert await _review_count(session, request_id) == 1
    sent = await notifications_for(session_factory, tech)
    assert sent[-1].type == "rating"
    assert sent[-1].data["rating"] == 5


async def test_aggregate_is_recomputed_over_all_reviews(session, catalog):
    tech = await make_technician(session)
    client = uuid.uuid4()
    for score in (5, 4, 4):
        request_id = await _completed(session, catalog["plumbing"], tech, client)
        result = await rate_request(session, request_id, client, score)

    assert result.technician_rating == 4.33
    assert result.technician_review_count == 3
    technician = await reload_technician(session, tech)
    assert technician.rating == 4.33
    assert technician.review_count == 3


async def test_second_rating_is_rejected_and_stores_nothing(session, catalog):
    tech = await make_technician(session)
    client = uuid.uuid4()
    request_id = await _completed(session, catalog["plumbing"], tech, client)
    await rate_request(session, request_id, client, 4)

    with pytest.raises(AlreadyRated):
        await rate_request(session, request_id, client, 1)

    assert (await reload(session, request_id)).rating == 4
    assert await _review_count(session, request_id) == 1
    technician = await reload_technician(session, tech)
    assert technician.rating == 4.0
    assert technician.review_count == 1


async def test_only_completed_requests_can_be_rated(session, catalog):
    tech = await make_technician(session)
    client = uuid.uuid4()
    request = await make_request(session, catalog["plumbing"], client_id=client)
    await accept_request(session, request.id, tech)

    with pytest.raises(InvalidTransition):
        await rate_request(session, request.id, client, 5)


async def test_only_the_client_can_rate(session, catalog):
    tech = await make_technician(session)
    request_id = await _completed(session, catalog["plumbing"], tech, uuid.uuid4())

    with pytest.raises(ForbiddenError):
        await rate_request(session, request_id, uuid.uuid4(), 5)


@pytest.mark.parametrize("score", [0, 6, True, 4.5])
async def test_rating_must_be_one_to_five(session, catalog, score):
    tech = await make_technician(session)
    client = uuid.uuid4()
    request_id = await _completed(session, catalog["plumbing"], tech, client)

    with pytest.raises(ValidationError):
        await rate_request(session, request_id, client, score)
