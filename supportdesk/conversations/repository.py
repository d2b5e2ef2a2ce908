"""Persistence for chat sessions and chat messages."""

from __future__ import annotations

import uuid
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..escalation.scoring import ConversationTurn
from ..models import Business, ChatMessage, ChatSession, Escalation
from ..models.support import SENDER_TYPES

_ROLE_BY_SENDER = {"customer": "customer", "ai": "assistant"}


class ChatMessageNotFoundError(RuntimeError):
    """Raised when a chat message id does not exist."""


class SessionNotFoundError(RuntimeError):
    """Raised when a chat session does not exist for the business."""


class EscalationNotFoundError(RuntimeError):
    """Raised when an escalation id does not exist."""


class FeedbackNotAllowedError(ValueError):
    """Raised when feedback targets a message not written by the AI."""


def serialize_message(record: ChatMessage) -> dict[str, Any]:
    """Public JSON projection of a chat message."""

    return {
        "_id": str(record.id),
        "businessId": str(record.business_id),
        "sessionId": str(record.session_id),
        "message": record.message,
        "senderType": record.sender_type,
        "agentId": str(record.agent_id) if record.agent_id else None,
        "escalationId": str(record.escalation_id) if record.escalation_id else None,
        "attachments": list(record.attachments or []),
        "systemMessageType": record.system_message_type,
        "isGoodResponse": record.is_good_response,
        "createdAt": record.created_at,
    }


class ChatRepository:
    """Reads and writes sessions and their messages through one SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # Businesses and sessions --------------------------------------------------
    def business_by_slug(self, slug: str) -> Business | None:
        return self._session.scalars(select(Business).where(Business.slug == slug)).first()

    def get_session(self, session_id: uuid.UUID) -> ChatSession | None:
        return self._session.get(ChatSession, session_id)

    def session_for_business(self, session_id: uuid.UUID, business_id: uuid.UUID) -> ChatSession:
        chat_session = self.get_session(session_id)
        if chat_session is None or chat_session.business_id != business_id:
            raise SessionNotFoundError("Session not found.")
        return chat_session

    def escalation_for_business(self, escalation_id: uuid.UUID, business_id: uuid.UUID) -> Escalation:
        escalation = self._session.get(Escalation, escalation_id)
        if escalation is None or escalation.business_id != business_id:
            raise EscalationNotFoundError("Escalation not found.")
        return escalation

    def create_session(
        self,
        business_id: uuid.UUID,
        *,
        customer_name: str | None = None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
    ) -> ChatSession:
        record = ChatSession(
            business_id=business_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def increment_escalation_attempts(self, chat_session: ChatSession) -> int:
        chat_session.escalation_attempts = (chat_session.escalation_attempts or 0) + 1
        self._session.flush()
        return chat_session.escalation_attempts

    def escalation_id_for_session(self, session_id: uuid.UUID) -> uuid.UUID | None:
        """Return the most recent escalation raised from ``session_id``."""

        stmt = (
            select(Escalation.id)
            .where(Escalation.session_id == session_id)
            .order_by(Escalation.created_at.desc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    # Messages -----------------------------------------------------------------
    def add_message(
        self,
        *,
        business_id: uuid.UUID,
        session_id: uuid.UUID,
        message: str,
        sender_type: str,
        agent_id: uuid.UUID | None = None,
        escalation_id: uuid.UUID | None = None,
        attachments: Sequence[dict[str, Any]] = (),
        system_message_type: str | None = None,
    ) -> ChatMessage:
        if sender_type not in SENDER_TYPES:
            raise ValueError(f"Unknown sender type: {sender_type}")
        record = ChatMessage(
            business_id=business_id,
            session_id=session_id,
            message=message,
            sender_type=sender_type,
            agent_id=agent_id if sender_type in ("agent", "system") else None,
            escalation_id=escalation_id,
            attachments=[dict(item) for item in attachments],
            system_message_type=system_message_type,
            is_good_response=None,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def list_messages(self, session_id: uuid.UUID) -> list[ChatMessage]:
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at.asc())
        )
        return list(self._session.scalars(stmt))

    def list_escalation_messages(self, escalation_id: uuid.UUID) -> list[ChatMessage]:
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.escalation_id == escalation_id)
            .order_by(ChatMessage.created_at.asc())
        )
        return list(self._session.scalars(stmt))

    def count_customer_messages(self, session_id: uuid.UUID) -> int:
        stmt = select(func.count(ChatMessage.id)).where(
            ChatMessage.session_id == session_id,
            ChatMessage.sender_type == "customer",
        )
        return int(self._session.scalar(stmt) or 0)

    def recent_history(self, session_id: uuid.UUID, limit: int = 6) -> list[ConversationTurn]:
        """Return the last ``limit`` customer/AI turns, oldest first."""

        stmt = (
            select(ChatMessage)
            .where(
                ChatMessage.session_id == session_id,
                ChatMessage.sender_type.in_(tuple(_ROLE_BY_SENDER)),
            )
            .order_by(ChatMessage.created_at.desc())
            .limit(limit)
        )
        rows = list(self._session.scalars(stmt))
        rows.reverse()
        return [
            ConversationTurn(role=_ROLE_BY_SENDER[row.sender_type], text=row.message, timestamp=row.created_at)
            for row in rows
        ]

    def set_feedback(self, message_id: uuid.UUID, is_good_response: bool | None) -> ChatMessage:
        record = self._session.get(ChatMessage, message_id)
        if record is None:
            raise ChatMessageNotFoundError(f"Chat message {message_id} not found")
        if record.sender_type != "ai":
            raise FeedbackNotAllowedError("Feedback can only be given on AI responses")
        record.is_good_response = is_good_response
        self._session.flush()
        return record


__all__ = [
    "ChatMessageNotFoundError",
    "ChatRepository",
    "EscalationNotFoundError",
    "FeedbackNotAllowedError",
    "SessionNotFoundError",
    "serialize_message",
]
