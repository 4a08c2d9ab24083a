"""WebSocket change feed so dashboards refresh without polling."""

import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.change_feed import feed
from app.services.lifecycle import ActorRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["feed"])


@router.websocket("/feed")
async def request_feed(websocket: WebSocket, viewer_id: uuid.UUID, role: ActorRole):
    """Stream service request changes visible to this viewer."""
    await websocket.accept()
    sub = feed.subscribe(viewer_id, role)
    try:
        while True:
            message = await sub.queue.get()
            await websocket.send_json(message)
    except WebSocketDisconnect:
        logger.info("Feed closed: %s", viewer_id)
    finally:
        feed.unsubscribe(sub)
