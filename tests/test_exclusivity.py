import asyncio

import pytest
from sqlalchemy import func, select

from conftest import make_request, make_technician, notifications_for, reload

from app.models import ServiceRequest
from app.services.cancellation import cancel_request
from app.services.errors import AlreadyActive, AlreadyTaken, InvalidTransition, WalletBlocked
from app.services.exclusivity import (
    accept_request,
    active_job_count,
    claim_pending_request,
    technician_has_active_job,
)
from app.services.quotes import send_quote
from app.services.store import get_request
from app.services.visibility import get_technician


async def test_accept_assigns_pending_broadcast(session, catalog, notifier, session_factory):
    tech = await make_technician(session, name="Ana")
    request = await make_request(session, catalog["plumbing"])

    accepted = await accept_request(session, request.id, tech, notifier=notifier)

    assert accepted.status == "accepted"
    assert accepted.technician_id == tech
    assert accepted.accepted_at is not None
    sent = await notifications_for(session_factory, accepted.client_id)
    assert [n.type for n in sent] == ["service_accepted"]
    assert "Ana" in sent[0].message


async def test_second_job_is_refused_while_one_is_active(session, catalog):
    tech = await make_technician(session)
    first = await make_request(session, catalog["plumbing"])
    second = await make_request(session, catalog["plumbing"])
    second_id = second.id
    await accept_request(session, first.id, tech)

    with pytest.raises(AlreadyActive):
        await accept_request(session, second_id, tech)

    untouched = await reload(session, second_id)
    assert untouched.status == "pending"
    assert untouched.technician_id is None
    assert await active_job_count(session, tech) == 1


async def test_accepting_a_taken_request_reports_already_taken(session, catalog):
    ana = await make_technician(session, name="Ana")
    bruno = await make_technician(session, name="Bruno")
    request = await make_request(session, catalog["plumbing"])
    request_id = request.id
    await accept_request(session, request_id, ana)

    with pytest.raises(AlreadyTaken):
        await accept_request(session, request_id, bruno)

    assert (await reload(session, request_id)).technician_id == ana


async def test_direct_request_cannot_be_taken_by_another_technician(session, catalog):
    ana = await make_technician(session, name="Ana")
    bruno = await make_technician(session, name="Bruno")
    request = await make_request(session, catalog["plumbing"], technician_id=ana)
    request_id = request.id

    with pytest.raises(AlreadyTaken):
        await accept_request(session, request_id, bruno)

    accepted = await accept_request(session, request_id, ana)
    assert accepted.technician_id == ana


async def test_wallet_blocked_technician_cannot_accept(session, catalog):
    tech = await make_technician(session, wallet_balance=-100)
    request = await make_request(session, catalog["plumbing"])
    request_id = request.id

    with pytest.raises(WalletBlocked):
        await accept_request(session, request_id, tech)

    assert (await reload(session, request_id)).status == "pending"


async def test_cancelled_request_cannot_be_accepted(session, catalog):
    tech = await make_technician(session)
    request = await make_request(session, catalog["plumbing"])
    request_id = request.id
    await cancel_request(session, request_id, request.client_id, "client", "No longer needed")

    with pytest.raises(InvalidTransition):
        await accept_request(session, request_id, tech)


async def test_concurrent_accepts_have_exactly_one_winner(session, session_factory, catalog):
    ana = await make_technician(session, name="Ana")
    bruno = await make_technician(session, name="Bruno")
    request = await make_request(session, catalog["plumbing"])
    request_id = request.id

    async def attempt(technician_id):
        async with session_factory() as own_session:
            return await accept_request(own_session, request_id, technician_id)

    results = await asyncio.gather(attempt(ana), attempt(bruno), return_exceptions=True)

    winners = [r for r in results if isinstance(r, ServiceRequest)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyTaken)

    final = await reload(session, request_id)
    assert final.status == "accepted"
    assert final.technician_id == winners[0].technician_id
    assert final.technician_id in (ana, bruno)


async def test_stale_claim_loses_the_conditional_write(session, session_factory, catalog):
    ana = await make_technician(session, name="Ana")
    bruno = await make_technician(session, name="Bruno")
    request = await make_request(session, catalog["plumbing"])
    request_id = request.id

    stale = await get_request(session, request_id)
    technician = await get_technician(session, bruno)
    async with session_factory() as other:
        await accept_request(other, request_id, ana)

    # The in-memory row still says pending, only the store knows better
    assert stale.status == "pending"
    with pytest.raises(AlreadyTaken):
        await claim_pending_request(session, stale, technician)

    final = await reload(session, request_id)
    assert final.technician_id == ana
    assert final.status == "accepted"
    assert not await technician_has_active_job(session, bruno)


async def test_concurrent_quotes_have_exactly_one_winner(session, session_factory, catalog):
    ana = await make_technician(session, name="Ana")
    bruno = await make_technician(session, name="Bruno")
    request = await make_request(session, catalog["electrical"])
    request_id = request.id

    async def attempt(technician_id, amount):
        async with session_factory() as own_session:
            return await send_quote(own_session, request_id, technician_id, amount)

    results = await asyncio.gather(attempt(ana, 8000), attempt(bruno, 9000), return_exceptions=True)

    winners = [r for r in results if isinstance(r, ServiceRequest)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyTaken)

    final = await reload(session, request_id)
    assert final.status == "accepted"
    assert final.quote_status == "sent"
    assert final.technician_id == winners[0].technician_id
    assert final.quote_amount == winners[0].quote_amount


async def test_no_technician_ever_holds_two_active_jobs(session, catalog):
    tech = await make_technician(session)
    ids = [(await make_request(session, catalog["plumbing"])).id for _ in range(3)]

    for request_id in ids:
        try:
            await accept_request(session, request_id, tech)
        except AlreadyActive:
            pass

    result = await session.execute(
        select(func.count(ServiceRequest.id)).where(
            ServiceRequest.technician_id == tech,
            ServiceRequest.status.in_(["accepted", "in_progress"]),
        )
    )
    assert result.scalar_one() == 1
    assert await technician_has_active_job(session, tech)
