"""Live-chat queue and agent presence.

A queue entry moves strictly forward::

    waiting -> assigned -> completed
    waiting -> cancelled
    assigned -> cancelled

Assignment is first come, first served on ``requested_at`` and needs an agent
whose presence is ``available`` for the same business. The claim itself is a
conditional ``UPDATE ... WHERE status = 'waiting'``; side effects only run when
that statement changed exactly one row, so two concurrent triggers can never
hand the same customer to two agents.

Every broadcast is queued on :attr:`QueueService.outbox` and sent by the caller
after commit.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..conversations.repository import ChatRepository, serialize_message
from ..models import Agent, AgentPresence, Escalation, QueueEntry, utcnow
from ..models.support import PRESENCE_STATUSES, QUEUE_OPEN_STATUSES
from ..realtime.hub import chat_room, status_room
from ..realtime.router import Outbox

logger = logging.getLogger(__name__)

QUEUE_TRANSITIONS: dict[str, frozenset[str]] = {
    "waiting": frozenset({"assigned", "cancelled"}),
    "assigned": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


class QueueEntryNotFoundError(RuntimeError):
    """Raised when a queue entry id does not exist."""


class InvalidTransitionError(ValueError):
    """Raised when a queue entry would move backwards or out of a terminal state."""


class InvalidStatusError(ValueError):
    """Raised when a status value is not part of the allowed set."""


class AgentNotFoundError(RuntimeError):
    """Raised when an agent does not exist for the business."""


@dataclass(frozen=True)
class Assignment:
    queue_id: uuid.UUID
    escalation_id: uuid.UUID
    agent_id: uuid.UUID
    business_id: uuid.UUID


def check_transition(current: str, target: str) -> None:
    if target not in QUEUE_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Cannot move queue entry from {current} to {target}")


def serialize_queue_entry(entry: QueueEntry) -> dict[str, Any]:
    """Queue entry joined with the escalation details agents need."""

    escalation = entry.escalation
    return {
        "_id": str(entry.id),
        "businessId": str(entry.business_id),
        "escalationId": str(entry.escalation_id),
        "status": entry.status,
        "requestedAt": entry.requested_at,
        "agentId": str(entry.agent_id) if entry.agent_id else None,
        "customerName": escalation.customer_name,
        "customerEmail": escalation.customer_email,
        "customerPhone": escalation.customer_phone,
        "concern": escalation.concern,
        "caseNumber": escalation.case_number,
        "description": escalation.description,
    }


def serialize_presence(presence: AgentPresence, agent: Agent | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "_id": str(presence.id),
        "agentId": str(presence.agent_id),
        "businessId": str(presence.business_id),
        "status": presence.status,
        "lastActive": presence.last_active,
    }
    if agent is not None:
        payload["agent"] = {"_id": str(agent.id), "name": agent.name, "email": agent.email}
    return payload


class QueueService:
    """Queue admission, FIFO assignment, completion and agent presence."""

    def __init__(self, session: Session, outbox: Outbox | None = None) -> None:
        self._session = session
        self._chats = ChatRepository(session)
        self.outbox = outbox if outbox is not None else Outbox()

    # Admission ----------------------------------------------------------------
    def open_entry_for(self, escalation_id: uuid.UUID) -> QueueEntry | None:
        stmt = select(QueueEntry).where(
            QueueEntry.escalation_id == escalation_id,
            QueueEntry.status.in_(QUEUE_OPEN_STATUSES),
        )
        return self._session.scalars(stmt).first()

    def enqueue(self, escalation: Escalation) -> QueueEntry:
        """Create a waiting entry unless the escalation already has an open one."""

        existing = self.open_entry_for(escalation.id)
        if existing is not None:
            return existing
        entry = QueueEntry(
            business_id=escalation.business_id,
            escalation_id=escalation.id,
            status="waiting",
            requested_at=utcnow(),
        )
        self._session.add(entry)
        self._session.flush()
        logger.info("Case %s queued for live chat", escalation.case_number)
        self.outbox.emit(
            status_room(escalation.business_id),
            "queue_updated",
            {"queueId": str(entry.id), "escalationId": str(escalation.id), "status": entry.status},
        )
        return entry

    def waiting(self, business_id: uuid.UUID) -> list[QueueEntry]:
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.business_id == business_id, QueueEntry.status == "waiting")
            .order_by(QueueEntry.requested_at.asc())
        )
        return list(self._session.scalars(stmt))

    # Assignment ---------------------------------------------------------------
    def _next_available_agent(self, business_id: uuid.UUID) -> AgentPresence | None:
        stmt = (
            select(AgentPresence)
            .where(AgentPresence.business_id == business_id, AgentPresence.status == "available")
            .order_by(AgentPresence.last_active.asc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def _claim(self, entry: QueueEntry, agent_id: uuid.UUID) -> bool:
        stmt = (
            update(QueueEntry)
            .where(QueueEntry.id == entry.id, QueueEntry.status == "waiting")
            .values(status="assigned", agent_id=agent_id, assigned_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.refresh(entry)
        return result.rowcount == 1

    def try_assign(self, business_id: uuid.UUID) -> list[Assignment]:
        """Match waiting customers with available agents until one side runs out."""

        assignments: list[Assignment] = []
        skipped: set[uuid.UUID] = set()
        while True:
            presence = self._next_available_agent(business_id)
            if presence is None:
                break
            entry = next((e for e in self.waiting(business_id) if e.id not in skipped), None)
            if entry is None:
                break
            if not self._claim(entry, presence.agent_id):
                logger.info("Queue entry %s was claimed concurrently", entry.id)
                skipped.add(entry.id)
                continue
            presence.status = "in-chat"
            presence.last_active = utcnow()
            self._session.flush()
            assignments.append(self._announce_assignment(entry, presence.agent_id))
        return assignments

    def _announce_assignment(self, entry: QueueEntry, agent_id: uuid.UUID) -> Assignment:
        escalation = entry.escalation
        agent = self._session.get(Agent, agent_id)
        agent_name = agent.name if agent else "Agent"
        room = chat_room(escalation.id)
        logger.info("Assigned case %s to agent %s", escalation.case_number, agent_id)

        self.outbox.join_agent(entry.business_id, agent_id, room)
        payload = {
            "queueId": str(entry.id),
            "escalationId": str(escalation.id),
            "sessionId": str(escalation.session_id),
            "caseNumber": escalation.case_number,
            "customerName": escalation.customer_name,
            "agentId": str(agent_id),
            "agentName": agent_name,
        }
        self.outbox.emit(room, "chat_assigned", payload)
        self.outbox.emit(status_room(entry.business_id), "chat_assigned", payload)

        for text, kind in (
            (f"{agent_name} has joined the chat", "agent_joined"),
            ("Chat session has started", "chat_started"),
        ):
            self._system_message(escalation, agent_id, text, kind)

        return Assignment(
            queue_id=entry.id,
            escalation_id=escalation.id,
            agent_id=agent_id,
            business_id=entry.business_id,
        )

    def _system_message(self, escalation: Escalation, agent_id: uuid.UUID | None, text: str, kind: str) -> None:
        record = self._chats.add_message(
            business_id=escalation.business_id,
            session_id=escalation.session_id,
            message=text,
            sender_type="system",
            agent_id=agent_id,
            escalation_id=escalation.id,
            system_message_type=kind,
        )
        self.outbox.emit(chat_room(escalation.id), "system_message", serialize_message(record))

    # Completion ---------------------------------------------------------------
    def _get_entry(self, queue_id: uuid.UUID) -> QueueEntry:
        entry = self._session.get(QueueEntry, queue_id)
        if entry is None:
            raise QueueEntryNotFoundError(f"Queue entry {queue_id} not found")
        return entry

    def _transition(self, entry: QueueEntry, target: str) -> None:
        current = entry.status
        check_transition(current, target)
        values: dict[str, Any] = {"status": target}
        if target in ("completed", "cancelled"):
            values["completed_at"] = utcnow()
        stmt = (
            update(QueueEntry)
            .where(QueueEntry.id == entry.id, QueueEntry.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.refresh(entry)
        if result.rowcount != 1:
            raise InvalidTransitionError(
                f"Queue entry {entry.id} changed concurrently; now {entry.status}"
            )

    def _release_agent(self, business_id: uuid.UUID, agent_id: uuid.UUID | None) -> None:
        if agent_id is None:
            return
        presence = self._presence(agent_id, business_id)
        if presence is not None and presence.status == "in-chat":
            presence.status = "available"
            presence.last_active = utcnow()
            self._session.flush()
            self.outbox.emit(
                status_room(business_id),
                "agent_status_update",
                {"agentId": str(agent_id), "status": "available"},
            )

    def complete(self, queue_id: uuid.UUID) -> QueueEntry:
        """Finish an assigned chat, free the agent and serve the next customer."""

        entry = self._get_entry(queue_id)
        self._transition(entry, "completed")
        escalation = entry.escalation
        agent = self._session.get(Agent, entry.agent_id) if entry.agent_id else None
        agent_name = agent.name if agent else "Agent"
        self._system_message(
            escalation,
            entry.agent_id,
            f"{agent_name} has ended the chat session. Thank you for contacting us!",
            "chat_ended",
        )
        self.outbox.emit(
            chat_room(escalation.id),
            "chat_ended",
            {"queueId": str(entry.id), "escalationId": str(escalation.id), "agentId": str(entry.agent_id)},
        )
        self._release_agent(entry.business_id, entry.agent_id)
        self.try_assign(entry.business_id)
        return entry

    def cancel(self, queue_id: uuid.UUID) -> QueueEntry:
        entry = self._get_entry(queue_id)
        was_assigned = entry.status == "assigned"
        self._transition(entry, "cancelled")
        self.outbox.emit(
            status_room(entry.business_id),
            "queue_updated",
            {"queueId": str(entry.id), "escalationId": str(entry.escalation_id), "status": entry.status},
        )
        if was_assigned:
            self._release_agent(entry.business_id, entry.agent_id)
            self.try_assign(entry.business_id)
        return entry

    # Presence -----------------------------------------------------------------
    def _presence(self, agent_id: uuid.UUID, business_id: uuid.UUID) -> AgentPresence | None:
        stmt = select(AgentPresence).where(
            AgentPresence.agent_id == agent_id,
            AgentPresence.business_id == business_id,
        )
        return self._session.scalars(stmt).first()

    def set_agent_status(self, agent_id: uuid.UUID, business_id: uuid.UUID, status: str) -> AgentPresence:
        """Upsert the agent's presence; ``available`` triggers an assignment attempt."""

        if status not in PRESENCE_STATUSES:
            raise InvalidStatusError(
                f"Invalid status. Must be one of: {', '.join(PRESENCE_STATUSES)}"
            )
        agent = self._session.get(Agent, agent_id)
        if agent is None or agent.business_id != business_id:
            raise AgentNotFoundError(f"Agent {agent_id} not found")

        # Last write wins; the unique (agent, business) index rejects a
        # duplicate row created by a concurrent first update.
        presence = self._presence(agent_id, business_id)
        if presence is None:
            presence = AgentPresence(agent_id=agent_id, business_id=business_id, status=status)
            self._session.add(presence)
        presence.status = status
        presence.last_active = utcnow()
        self._session.flush()

        self.outbox.emit(
            status_room(business_id),
            "agent_status_update",
            {"agentId": str(agent_id), "status": status},
        )
        if status == "available":
            self.try_assign(business_id)
        return presence

    def agent_statuses(self, business_id: uuid.UUID) -> list[tuple[AgentPresence, Agent]]:
        stmt = (
            select(AgentPresence, Agent)
            .join(Agent, Agent.id == AgentPresence.agent_id)
            .where(AgentPresence.business_id == business_id)
            .order_by(AgentPresence.last_active.desc())
        )
        return [(presence, agent) for presence, agent in self._session.execute(stmt)]


__all__ = [
    "AgentNotFoundError",
    "Assignment",
    "InvalidStatusError",
    "InvalidTransitionError",
    "QUEUE_TRANSITIONS",
    "QueueEntryNotFoundError",
    "QueueService",
    "check_transition",
    "serialize_presence",
    "serialize_queue_entry",
]
