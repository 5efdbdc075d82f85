"""
GATHERLY - Notification Routes

``POST /api/notifications`` pushes a notification to every realtime client
and, when the message queue is reachable, appends it to the notification stream.
Clients acknowledge with the realtime ``notification:ack`` event.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from api.pipeline import RouteGroup
from api.realtime import RealtimeGateway
from api.security.auth import User, require_auth
from core.errors import ServiceUnavailableError
from integrations.messaging import QueueMessage
from observability.logging import get_logger

logger = get_logger("gatherly.api.notifications")

ROUTE_GROUP = RouteGroup("/api/notifications", authenticated=True)

NOTIFICATION_EVENT = "notification"
ACK_EVENT = "notification:ack"


class NotificationRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    event: str = Field(default=NOTIFICATION_EVENT, min_length=1, max_length=100)
    data: Dict[str, Any] = Field(default_factory=dict)


class NotificationResponse(BaseModel):
    status: str = "sent"
    delivered: int
    queued: bool
    message_id: Optional[str] = None


def register(app: FastAPI, gateway: RealtimeGateway) -> None:
    router = APIRouter(prefix="/api/notifications", tags=["notifications"])

    @router.post("", response_model=NotificationResponse)
    async def send_notification(
        body: NotificationRequest,
        request: Request,
        user: User = Depends(require_auth),
    ) -> NotificationResponse:
        frame = {"message": body.message, "data": body.data, "sender": user.id}
        delivered = await gateway.broadcast(body.event, frame)

        message_id = None
        messaging = request.app.state.registry.find("messaging")
        if messaging is not None:
            try:
                message_id = await messaging.publish(QueueMessage(event_type=body.event, payload=frame))
            except (ServiceUnavailableError, RedisError) as e:
                logger.warning("Notification not queued", event_name=body.event, error=str(e))

        return NotificationResponse(
            delivered=delivered,
            queued=message_id is not None,
            message_id=message_id,
        )

    @router.get("/clients")
    async def connected_clients() -> Dict[str, int]:
        return {"clients": gateway.client_count}

    @gateway.on(ACK_EVENT)
    async def on_ack(client_id: str, data: Any) -> Dict[str, Any]:
        logger.info("Notification acknowledged", client_id=client_id, ack=data)
        return {"received": True}

    app.include_router(router)
