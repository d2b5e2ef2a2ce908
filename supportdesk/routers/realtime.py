"""WebSocket endpoint for agents and customers in live chat.

Frames in both directions are JSON objects ``{"event": str, "data": {...}}``.
Each database-touching event runs in its own short session; broadcasts are
sent after the commit.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..conversations.repository import EscalationNotFoundError, SessionNotFoundError, serialize_message
from ..escalation.queue import QueueEntryNotFoundError, QueueService
from ..models.session import get_session_factory
from ..realtime.hub import chat_room, notification_room, status_room
from ..realtime.router import MessageRouter, get_message_router, post_chat_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class FrameError(ValueError):
    """Raised for a malformed or incomplete client frame."""


def _require(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value in (None, ""):
        raise FrameError(f"{key} is required")
    return str(value)


def _uuid(data: dict[str, Any], key: str, required: bool = True) -> uuid.UUID | None:
    raw = data.get(key)
    if raw in (None, ""):
        if required:
            raise FrameError(f"{key} is required")
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError as exc:
        raise FrameError(f"{key} is not a valid id") from exc


class RealtimeSession:
    """Event handlers bound to one accepted WebSocket."""

    def __init__(
        self,
        websocket: WebSocket,
        messages: MessageRouter,
        session_factory: sessionmaker[Session],
    ) -> None:
        self.websocket = websocket
        self.messages = messages
        self.session_factory = session_factory
        self.handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "join_chat": self.join_chat,
            "leave_room": self.leave_room,
            "join_status_room": self.join_status_room,
            "join_notification_room": self.join_notification_room,
            "leave_notification_room": self.leave_notification_room,
            "agent_online": self.agent_online,
            "send_message": self.send_message,
            "typing": self.typing,
            "stop_typing": self.stop_typing,
            "end_chat": self.end_chat,
        }

    @property
    def hub(self):
        return self.messages.hub

    async def error(self, message: str) -> None:
        await self.hub.send(self.websocket, "error", {"message": message})

    async def handle(self, frame: Any) -> None:
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self.error("Frames must be objects with an event name")
            return
        handler = self.handlers.get(frame["event"])
        if handler is None:
            await self.error(f"Unknown event: {frame['event']}")
            return
        data = frame.get("data") or {}
        if not isinstance(data, dict):
            await self.error("Event data must be an object")
            return
        try:
            await handler(data)
        except FrameError as exc:
            await self.error(str(exc))
        except SQLAlchemyError:
            logger.exception("Storage failure handling %s", frame["event"])
            await self.error("Could not process event")

    # Rooms ------------------------------------------------------------------
    async def join_chat(self, data: dict[str, Any]) -> None:
        room = chat_room(_uuid(data, "escalationId"))
        self.hub.join(self.websocket, room)
        await self.hub.send(self.websocket, "joined_room", {"room": room})

    async def leave_room(self, data: dict[str, Any]) -> None:
        room = data.get("room") or chat_room(_uuid(data, "escalationId"))
        self.hub.leave(self.websocket, str(room))

    async def join_status_room(self, data: dict[str, Any]) -> None:
        self.hub.join(self.websocket, status_room(_uuid(data, "businessId")))

    async def join_notification_room(self, data: dict[str, Any]) -> None:
        self.hub.join(self.websocket, notification_room(_uuid(data, "businessId")))

    async def leave_notification_room(self, data: dict[str, Any]) -> None:
        self.hub.leave(self.websocket, notification_room(_uuid(data, "businessId")))

    async def agent_online(self, data: dict[str, Any]) -> None:
        await self.messages.agent_online(_uuid(data, "businessId"), _uuid(data, "agentId"), self.websocket)

    # Chat -------------------------------------------------------------------
    async def send_message(self, data: dict[str, Any]) -> None:
        text = _require(data, "message").strip()
        sender_type = data.get("senderType") or "customer"
        with self.session_factory() as db:
            try:
                record, room = await post_chat_message(
                    db,
                    self.messages,
                    business_id=_uuid(data, "businessId"),
                    session_id=_uuid(data, "sessionId"),
                    message=text,
                    sender_type=sender_type,
                    agent_id=_uuid(data, "agentId", required=False),
                    escalation_id=_uuid(data, "escalationId", required=False),
                    attachments=data.get("attachments") or (),
                )
            except (ValueError, SessionNotFoundError, EscalationNotFoundError) as exc:
                db.rollback()
                raise FrameError(str(exc)) from exc
        if room is None:
            # Still confirm the write to the sender.
            await self.hub.send(self.websocket, "receive_message", serialize_message(record))

    async def _typing(self, event: str, data: dict[str, Any]) -> None:
        room = chat_room(_uuid(data, "escalationId"))
        payload = {
            "escalationId": str(data["escalationId"]),
            "senderType": data.get("senderType"),
            "name": data.get("name"),
        }
        await self.hub.emit(room, event, payload, exclude=self.websocket)

    async def typing(self, data: dict[str, Any]) -> None:
        await self._typing("typing", data)

    async def stop_typing(self, data: dict[str, Any]) -> None:
        await self._typing("stop_typing", data)

    async def end_chat(self, data: dict[str, Any]) -> None:
        with self.session_factory() as db:
            service = QueueService(db)
            queue_id = _uuid(data, "queueId", required=False)
            if queue_id is None:
                entry = service.open_entry_for(_uuid(data, "escalationId"))
                if entry is None:
                    raise FrameError("No open chat for this escalation")
                queue_id = entry.id
            try:
                service.complete(queue_id)
                db.commit()
            except (QueueEntryNotFoundError, ValueError) as exc:
                db.rollback()
                raise FrameError(str(exc)) from exc
        await self.messages.dispatch(service.outbox)


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    messages: MessageRouter = Depends(get_message_router),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> None:
    await websocket.accept()
    connection = RealtimeSession(websocket, messages, session_factory)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await connection.error("Frames must be JSON")
                continue
            await connection.handle(frame)
    except WebSocketDisconnect:
        logger.debug("WebSocket client disconnected")
    finally:
        await messages.disconnect(websocket)
