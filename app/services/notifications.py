"""Outbound notifications for request lifecycle events.

Notifications are emitted after the triggering transaction commits. Delivery
is best-effort: a failure here is logged and never undoes the transition.
"""

import logging
import uuid
from dataclasses import dataclass, field

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.models import Notification

logger = logging.getLogger(__name__)

CURRENCY = "Kz"


@dataclass
class OutboundNotification:
    user_id: uuid.UUID
    title: str
    message: str
    type: str
    data: dict = field(default_factory=dict)


def _money(amount: float | None) -> str:
    return f"{amount or 0:,.0f} {CURRENCY}"


def format_direct_request(technician_id: uuid.UUID, request_id: uuid.UUID, client_id: uuid.UUID) -> OutboundNotification:
    return OutboundNotification(
        user_id=technician_id,
        title="New direct request!",
        message="A client requested your service directly.",
        type="service_request",
        data={"service_request_id": str(request_id), "client_id": str(client_id), "direct_request": True},
    )


def format_broadcast_request(
    technician_id: uuid.UUID,
    request_id: uuid.UUID,
    service_name: str,
    category_name: str,
    price_type: str,
) -> OutboundNotification:
    call_to_action = "Send your quote!" if price_type == "quote" else "Be the first to accept!"
    return OutboundNotification(
        user_id=technician_id,
        title="New service request!",
        message=f"A client needs {service_name}. {call_to_action}",
        type="service_request",
        data={
            "service_request_id": str(request_id),
            "category": category_name,
            "service_name": service_name,
            "broadcast": True,
        },
    )


def format_request_accepted(client_id: uuid.UUID, request_id: uuid.UUID, technician_name: str) -> OutboundNotification:
    return OutboundNotification(
        user_id=client_id,
        title="Technician on the way!",
        message=f"{technician_name} accepted your request and is on the way.",
        type="service_accepted",
        data={"service_request_id": str(request_id), "technician_name": technician_name},
    )


def format_service_started(client_id: uuid.UUID, request_id: uuid.UUID) -> OutboundNotification:
    return OutboundNotification(
        user_id=client_id,
        title="Service started",
        message="The technician has arrived and started working.",
        type="service_update",
        data={"service_request_id": str(request_id)},
    )


def format_quote_received(
    client_id: uuid.UUID,
    request_id: uuid.UUID,
    technician_name: str,
    amount: float,
    category_name: str | None,
) -> OutboundNotification:
    return OutboundNotification(
        user_id=client_id,
        title="Quote received!",
        message=(
            f"{technician_name} sent a quote of {_money(amount)} for "
            f"{category_name or 'your service'}. Approve it to get started."
        ),
        type="quote_received",
        data={"service_request_id": str(request_id), "quote_amount": amount},
    )


def format_quote_approved(
    technician_id: uuid.UUID,
    request_id: uuid.UUID,
    amount: float | None,
    category_name: str | None,
) -> OutboundNotification:
    return OutboundNotification(
        user_id=technician_id,
        title="Quote approved!",
        message=(
            f"The client approved your quote of {_money(amount)} for "
            f"{category_name or 'the service'}. You can start the job!"
        ),
        type="quote_approved",
        data={"service_request_id": str(request_id)},
    )


def format_quote_rejected(technician_id: uuid.UUID, request_id: uuid.UUID, amount: float | None) -> OutboundNotification:
    return OutboundNotification(
        user_id=technician_id,
        title="Quote rejected",
        message=f"The client rejected your quote of {_money(amount)}. You can send a new one.",
        type="quote_rejected",
        data={"service_request_id": str(request_id)},
    )


def format_service_completed(
    client_id: uuid.UUID,
    request_id: uuid.UUID,
    total_price: float,
    category_name: str | None,
) -> OutboundNotification:
    return OutboundNotification(
        user_id=client_id,
        title="Service completed!",
        message=(
            f"Your {category_name or 'technical'} service is complete. "
            f"Total: {_money(total_price)}. Rate the service!"
        ),
        type="service_update",
        data={"service_request_id": str(request_id), "total_price": total_price},
    )


def format_service_cancelled(
    user_id: uuid.UUID,
    request_id: uuid.UUID,
    cancelled_by: str,
    reason: str,
) -> OutboundNotification:
    return OutboundNotification(
        user_id=user_id,
        title="Request cancelled",
        message=f"The {cancelled_by} cancelled the request: {reason}",
        type="service_cancelled",
        data={"service_request_id": str(request_id), "cancelled_by": cancelled_by},
    )


def format_new_rating(
    technician_id: uuid.UUID,
    request_id: uuid.UUID,
    rating: int,
    feedback: str | None,
    category_name: str | None,
) -> OutboundNotification:
    stars = "⭐" * rating
    plural = "s" if rating > 1 else ""
    message = f"A client rated your {category_name or 'technical'} service with {rating} star{plural}!"
    if feedback:
        message += f' "{feedback}"'
    return OutboundNotification(
        user_id=technician_id,
        title=f"New rating: {stars}",
        message=message,
        type="rating",
        data={"service_request_id": str(request_id), "rating": rating, "feedback": feedback},
    )


class NotificationSink:
    """Stores notifications and optionally forwards them to a webhook."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        webhook_url: str | None = None,
    ):
        self._session_factory = session_factory
        self._webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url

    async def emit(self, *notifications: OutboundNotification) -> int:
        """Deliver notifications. Returns how many were stored; never raises."""
        if not notifications:
            return 0
        try:
            async with self._session_factory() as session:
                session.add_all(
                    Notification(
                        user_id=n.user_id,
                        title=n.title,
                        message=n.message,
                        type=n.type,
                        data=n.data,
                    )
                    for n in notifications
                )
                await session.commit()
        except Exception:
            logger.exception("Failed to store %d notification(s)", len(notifications))
            return 0

        if self._webhook_url:
            await self._forward(notifications)

        logger.info("Emitted %d notification(s): %s", len(notifications), notifications[0].type)
        return len(notifications)

    async def _forward(self, notifications: tuple[OutboundNotification, ...]) -> None:
        payload = [
            {
                "user_id": str(n.user_id),
                "title": n.title,
                "message": n.message,
                "type": n.type,
                "data": n.data,
            }
            for n in notifications
        ]
        try:
            async with httpx.AsyncClient(timeout=settings.notification_timeout) as client:
                resp = await client.post(self._webhook_url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError:
            logger.warning("Notification webhook delivery failed", exc_info=True)
