from app.db.session import async_session
from app.services.notifications import NotificationSink


def get_notifier() -> NotificationSink:
    return NotificationSink(async_session)
