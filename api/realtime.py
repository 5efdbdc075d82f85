"""
GATHERLY - Realtime Channel Gateway

WebSocket gateway shared by every route module. Clients exchange JSON
frames of the form ``{"event": <name>, "data": <any>}``; route modules
register handlers for inbound events and use ``broadcast``/``emit`` for
outbound ones.

The gateway has to be attached to the application before any route module
is registered, since route modules bind their realtime events while they
are being registered.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from core.errors import GatherlyError, SubsystemConnectionError
from core.subsystems import Criticality, SubsystemHandleBase, SubsystemStatus
from observability.logging import get_logger

logger = get_logger("gatherly.realtime")

EventHandler = Callable[[str, Any], Union[Any, Awaitable[Any]]]


class RealtimeGatewayNotReadyError(GatherlyError):
    """Route modules were registered before the realtime gateway was attached."""

    error_code = "REALTIME_NOT_READY"


class RealtimeGateway:
    """
    Event-based WebSocket hub.

    Usage:
        gateway = RealtimeGateway()
        gateway.attach(app)

        @gateway.on("chat:message")
        async def on_message(client_id, data):
            await gateway.broadcast("chat:message", data)
    """

    def __init__(self, path: str = "/ws"):
        self.path = path
        self._handlers: Dict[str, EventHandler] = {}
        self._clients: Dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()
        self._attached = False

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def events(self) -> List[str]:
        return sorted(self._handlers)

    def attach(self, app: FastAPI) -> None:
        """Mount the WebSocket endpoint on ``app``. Idempotent."""
        if self._attached:
            return
        app.add_api_websocket_route(self.path, self._endpoint)
        app.state.realtime = self
        self._attached = True
        logger.info("Realtime gateway attached", path=self.path)

    def on(self, event: str, handler: Optional[EventHandler] = None):
        """Register ``handler`` for inbound ``event``; usable as a decorator."""
        def register(fn: EventHandler) -> EventHandler:
            if event in self._handlers:
                raise ValueError(f"Realtime event already bound: {event}")
            self._handlers[event] = fn
            logger.debug("Realtime event bound", event_name=event)
            return fn

        if handler is not None:
            return register(handler)
        return register

    async def emit(self, client_id: str, event: str, data: Any = None) -> bool:
        """Send one frame to one client. False when the client is gone."""
        websocket = self._clients.get(client_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json({"event": event, "data": data})
        except Exception as e:
            logger.debug("Dropping unreachable client", client_id=client_id, error=str(e))
            await self._remove(client_id)
            return False
        return True

    async def broadcast(self, event: str, data: Any = None) -> int:
        """Send one frame to every connected client; returns deliveries."""
        results = await asyncio.gather(
            *(self.emit(client_id, event, data) for client_id in list(self._clients))
        )
        return sum(1 for delivered in results if delivered)

    async def _remove(self, client_id: str) -> None:
        async with self._lock:
            self._clients.pop(client_id, None)

    async def _endpoint(self, websocket: WebSocket) -> None:
        await websocket.accept()
        client_id = str(uuid.uuid4())
        async with self._lock:
            self._clients[client_id] = websocket
        logger.info("Realtime client connected", client_id=client_id, clients=self.client_count)
        await websocket.send_json({"event": "connected", "data": {"client_id": client_id}})

        try:
            while True:
                raw = await websocket.receive_text()
                reply = await self.dispatch(client_id, raw)
                if reply is not None:
                    await websocket.send_json(reply)
        except WebSocketDisconnect:
            pass
        finally:
            await self._remove(client_id)
            logger.info("Realtime client disconnected", client_id=client_id, clients=self.client_count)

    async def dispatch(self, client_id: str, raw: str) -> Optional[Dict[str, Any]]:
        """
        Route one inbound frame to its handler.

        Returns the frame to send back: the handler's result under the same
        event name, an ``error`` frame, or None when there is nothing to say.
        """
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            return _error_frame("Frames must be JSON objects")
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            return _error_frame("Frames must carry a string 'event'")

        event = frame["event"]
        handler = self._handlers.get(event)
        if handler is None:
            return _error_frame(f"Unknown event '{event}'", event)

        try:
            result = handler(client_id, frame.get("data"))
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error("Realtime handler failed", event_name=event, client_id=client_id, error=str(e))
            return _error_frame(f"Handler for '{event}' failed", event)

        if result is None:
            return None
        return {"event": event, "data": result}


def _error_frame(message: str, event: Optional[str] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"message": message}
    if event is not None:
        data["event"] = event
    return {"event": "error", "data": data}


class RealtimeChannelHandle(SubsystemHandleBase):
    """Subsystem handle reporting whether the gateway is serving."""

    def __init__(
        self,
        gateway: RealtimeGateway,
        criticality: Criticality = Criticality.OPTIONAL,
        name: str = "realtime",
    ):
        super().__init__(name, criticality)
        self.gateway = gateway

    async def _open(self) -> None:
        if not self.gateway.is_attached:
            raise SubsystemConnectionError("realtime gateway is not attached", subsystem=self.name)

    async def _ping(self) -> SubsystemStatus:
        if not self.gateway.is_attached:
            return SubsystemStatus.disconnected("gateway not attached")
        return SubsystemStatus.connected(f"{self.gateway.client_count} clients")
