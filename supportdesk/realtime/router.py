"""Real-time message routing and agent presence.

:class:`MessageRouter` maps logical concerns onto rooms of the
:class:`~supportdesk.realtime.hub.RoomHub`:

- ``chat_<escalationId>`` carries chat, typing and system messages for one case.
- ``status_<businessId>`` carries agent presence and queue assignment events.
- ``notifications_<businessId>`` carries dashboard notifications.

Services never broadcast directly. They queue events on an :class:`Outbox`
while they work, and the caller dispatches it after the database transaction
commits, so a client is never told about a row that was rolled back.

The ``(businessId, agentId) -> connection`` presence map is a per-process
cache. Agents re-register with ``agent_online`` when they reconnect.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Sequence

from fastapi.requests import HTTPConnection
from sqlalchemy.orm import Session

from ..conversations.repository import ChatRepository, serialize_message
from ..models import ChatMessage
from .hub import Connection, RoomHub, chat_room, status_room

logger = logging.getLogger(__name__)


@dataclass
class Outbox:
    """Real-time side effects recorded during a unit of work."""

    joins: list[tuple[str, str, str]] = field(default_factory=list)
    events: list[tuple[str, str, Any]] = field(default_factory=list)

    def emit(self, room: str, event: str, data: Any) -> None:
        self.events.append((room, event, data))

    def join_agent(self, business_id: object, agent_id: object, room: str) -> None:
        self.joins.append((str(business_id), str(agent_id), room))

    def clear(self) -> None:
        self.joins.clear()
        self.events.clear()

    def __bool__(self) -> bool:
        return bool(self.joins or self.events)


class MessageRouter:
    """Routes events to rooms and remembers which socket belongs to which agent."""

    def __init__(self, hub: RoomHub | None = None) -> None:
        self.hub = hub or RoomHub()
        self._agents: dict[tuple[str, str], Connection] = {}

    # Presence ----------------------------------------------------------------
    async def agent_online(self, business_id: object, agent_id: object, connection: Connection) -> None:
        key = (str(business_id), str(agent_id))
        self._agents[key] = connection
        self.hub.join(connection, status_room(business_id))
        logger.info("Agent %s connected for business %s", agent_id, business_id)
        await self.hub.emit(
            status_room(business_id),
            "agent_presence",
            {"agentId": str(agent_id), "connected": True},
        )

    async def disconnect(self, connection: Connection) -> None:
        """Forget ``connection`` everywhere and announce departed agents."""

        departed = [key for key, conn in self._agents.items() if conn is connection]
        for key in departed:
            del self._agents[key]
        self.hub.leave_all(connection)
        for business_id, agent_id in departed:
            logger.info("Agent %s disconnected from business %s", agent_id, business_id)
            await self.hub.emit(
                status_room(business_id),
                "agent_presence",
                {"agentId": agent_id, "connected": False},
            )

    def agent_connection(self, business_id: object, agent_id: object) -> Connection | None:
        return self._agents.get((str(business_id), str(agent_id)))

    def online_agents(self, business_id: object) -> list[str]:
        return [agent for business, agent in self._agents if business == str(business_id)]

    # Dispatch ----------------------------------------------------------------
    async def dispatch(self, outbox: Outbox) -> None:
        """Apply queued joins, then emit queued events in order."""

        for business_id, agent_id, room in outbox.joins:
            connection = self.agent_connection(business_id, agent_id)
            if connection is None:
                logger.info("Agent %s has no live connection; %s not joined", agent_id, room)
                continue
            self.hub.join(connection, room)
        for room, event, data in outbox.events:
            await self.hub.emit(room, event, data)
        outbox.clear()


def get_message_router(connection: HTTPConnection) -> MessageRouter:
    """FastAPI dependency returning the application's message router."""

    router = getattr(connection.app.state, "message_router", None)
    if router is None:
        router = MessageRouter()
        connection.app.state.message_router = router
    return router


def resolve_chat_room(
    repo: ChatRepository,
    *,
    escalation_id: uuid.UUID | None,
    session_id: uuid.UUID | None,
) -> str | None:
    """Pick the room for a chat message: explicit escalation, else the session's."""

    if escalation_id is not None:
        return chat_room(escalation_id)
    if session_id is not None:
        bound = repo.escalation_id_for_session(session_id)
        if bound is not None:
            return chat_room(bound)
    return None


async def post_chat_message(
    db: Session,
    router: MessageRouter,
    *,
    business_id: uuid.UUID,
    session_id: uuid.UUID,
    message: str,
    sender_type: str,
    agent_id: uuid.UUID | None = None,
    escalation_id: uuid.UUID | None = None,
    attachments: Sequence[dict[str, Any]] = (),
) -> tuple[ChatMessage, str | None]:
    """Persist a chat message, commit, then broadcast it to its room.

    The session and any explicit escalation must belong to ``business_id``;
    otherwise :class:`SessionNotFoundError` or
    :class:`EscalationNotFoundError` is raised before anything is written.
    When no room can be resolved the broadcast is skipped with a warning and
    ``None`` is returned as the room.
    """

    repo = ChatRepository(db)
    repo.session_for_business(session_id, business_id)
    if escalation_id is None:
        escalation_id = repo.escalation_id_for_session(session_id)
    else:
        repo.escalation_for_business(escalation_id, business_id)
    record = repo.add_message(
        business_id=business_id,
        session_id=session_id,
        message=message,
        sender_type=sender_type,
        agent_id=agent_id,
        escalation_id=escalation_id,
        attachments=attachments,
    )
    db.commit()

    room = resolve_chat_room(repo, escalation_id=escalation_id, session_id=session_id)
    if room is None:
        logger.warning("No chat room for session %s; message %s stored without broadcast", session_id, record.id)
        return record, None
    await router.hub.emit(room, "receive_message", serialize_message(record))
    return record, room


__all__ = [
    "MessageRouter",
    "Outbox",
    "get_message_router",
    "post_chat_message",
    "resolve_chat_room",
]
