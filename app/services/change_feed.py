"""In-process change feed for service request rows.

Viewers subscribe with their id and role and receive row snapshots for the
events they are allowed to see. The feed only affects how quickly a UI sees
the store; nothing in the engine waits on it.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from app.models import ServiceRequest
from app.schemas.service_request import serialize_request
from app.services.lifecycle import ActorRole

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


@dataclass(eq=False)
class Subscription:
    viewer_id: uuid.UUID
    role: ActorRole
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=QUEUE_SIZE))

    def wants(self, event: str, request: ServiceRequest) -> bool:
        if self.role == ActorRole.ADMIN:
            return True
        if self.role == ActorRole.CLIENT:
            return request.client_id == self.viewer_id
        if request.technician_id == self.viewer_id:
            return True
        # New broadcast rows go to every technician; visibility filtering happens client-side
        return event == "INSERT" and request.technician_id is None


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(self, viewer_id: uuid.UUID, role: ActorRole) -> Subscription:
        sub = Subscription(viewer_id=viewer_id, role=role)
        self._subscriptions.append(sub)
        logger.info("Feed subscriber added: %s (%s)", viewer_id, role)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def publish(self, event: str, request: ServiceRequest) -> int:
        """Push a row change to interested subscribers. Returns deliveries made."""
        delivered = 0
        for sub in list(self._subscriptions):
            if not sub.wants(event, request):
                continue
            include_code = sub.role == ActorRole.CLIENT
            message = {"event": event, "request": serialize_request(request, include_code=include_code)}
            try:
                sub.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Feed queue full for %s, dropping %s event", sub.viewer_id, event)
        return delivered


feed = ChangeFeed()
