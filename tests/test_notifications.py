import uuid

import httpx
import pytest

from conftest import make_request, make_technician, notifications_for

from app.services.change_feed import ChangeFeed, feed
from app.services.exclusivity import accept_request
from app.services.notifications import (
    NotificationSink,
    format_broadcast_request,
    format_new_rating,
    format_quote_received,
)


def test_broadcast_message_depends_on_price_type():
    fixed = format_broadcast_request(uuid.uuid4(), uuid.uuid4(), "Leak repair", "Plumbing", "fixed")
    quoted = format_broadcast_request(uuid.uuid4(), uuid.uuid4(), "Wiring", "Electrical", "quote")

    assert fixed.message.endswith("Be the first to accept!")
    assert quoted.message.endswith("Send your quote!")


def test_rating_message():
    note = format_new_rating(uuid.uuid4(), uuid.uuid4(), 1, "Late", "Plumbing")

    assert note.title == "New rating: ⭐"
    assert "1 star!" in note.message
    assert note.message.endswith('"Late"')


def test_quote_message_formats_amount():
    note = format_quote_received(uuid.uuid4(), uuid.uuid4(), "Ana", 12500, None)

    assert "12,500 Kz" in note.message
    assert "your service" in note.message


async def test_sink_stores_notifications(notifier, session_factory):
    user = uuid.uuid4()
    note = format_quote_received(user, uuid.uuid4(), "Ana", 8000, "Electrical")

    assert await notifier.emit(note) == 1
    assert await notifier.emit() == 0

    stored = await notifications_for(session_factory, user)
    assert [n.type for n in stored] == ["quote_received"]
    assert stored[0].read is False


def _broken_factory():
    raise RuntimeError("database is gone")


async def test_sink_failure_is_logged_not_raised(caplog):
    sink = NotificationSink(_broken_factory, webhook_url="")
    note = format_quote_received(uuid.uuid4(), uuid.uuid4(), "Ana", 8000, "Electrical")

    assert await sink.emit(note) == 0
    assert "Failed to store" in caplog.text


async def test_failed_notification_does_not_undo_transition(session, catalog):
    tech = await make_technician(session)
    request = await make_request(session, catalog["plumbing"])

    accepted = await accept_request(session, request.id, tech, notifier=NotificationSink(_broken_factory, webhook_url=""))

    assert accepted.status == "accepted"


async def test_webhook_failure_keeps_stored_rows(session_factory, monkeypatch):
    async def _fail(self, *args, **kwargs):
        raise httpx.ConnectError("unreachable")

    monkeypatch.setattr(httpx.AsyncClient, "post", _fail)
    sink = NotificationSink(session_factory, webhook_url="http://hooks.invalid/notify")
    user = uuid.uuid4()

    assert await sink.emit(format_quote_received(user, uuid.uuid4(), "Ana", 8000, None)) == 1
    assert len(await notifications_for(session_factory, user)) == 1


@pytest.fixture
def subscriptions():
    subs = []

    def _subscribe(viewer_id, role):
        sub = feed.subscribe(viewer_id, role)
        subs.append(sub)
        return sub

    yield _subscribe
    for sub in subs:
        feed.unsubscribe(sub)


async def test_feed_delivers_rows_per_viewer(session, catalog, subscriptions):
    client_id = uuid.uuid4()
    tech = await make_technician(session)
    bystander = await make_technician(session, name="Bystander")
    client_sub = subscriptions(client_id, "client")
    tech_sub = subscriptions(tech, "technician")
    bystander_sub = subscriptions(bystander, "technician")
    admin_sub = subscriptions(uuid.uuid4(), "admin")

    request = await make_request(session, catalog["plumbing"], client_id=client_id)
    await accept_request(session, request.id, tech)

    client_events = [client_sub.queue.get_nowait() for _ in range(client_sub.queue.qsize())]
    tech_events = [tech_sub.queue.get_nowait() for _ in range(tech_sub.queue.qsize())]
    bystander_events = [bystander_sub.queue.get_nowait() for _ in range(bystander_sub.queue.qsize())]

    assert [e["event"] for e in client_events] == ["INSERT", "UPDATE"]
    assert client_events[0]["request"]["completion_code"] == request.completion_code
    assert [e["event"] for e in tech_events] == ["INSERT", "UPDATE"]
    assert all("completion_code" not in e["request"] for e in tech_events)
    # The broadcast insert reaches every technician, the assignment only the winner
    assert [e["event"] for e in bystander_events] == ["INSERT"]
    assert admin_sub.queue.qsize() == 2


async def test_full_queue_drops_events(session, catalog):
    local = ChangeFeed()
    sub = local.subscribe(uuid.uuid4(), "admin")
    request = await make_request(session, catalog["plumbing"])

    for _ in range(sub.queue.maxsize):
        assert local.publish("UPDATE", request) == 1
    assert local.publish("UPDATE", request) == 0

    local.unsubscribe(sub)
    assert local.publish("UPDATE", request) == 0
