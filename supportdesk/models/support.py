"""Escalation, queue, presence and chat-message models.

These tables back the human hand-off path: escalation cases with their
activity log and notifications, the live-chat queue, agent presence per
business, and every chat message exchanged in a session.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base, utcnow

ESCALATION_STATUSES = ("escalated", "pending", "resolved")
QUEUE_STATUSES = ("waiting", "assigned", "completed", "cancelled")
QUEUE_OPEN_STATUSES = ("waiting", "assigned")
PRESENCE_STATUSES = ("offline", "online", "available", "away", "in-chat")
SENDER_TYPES = ("customer", "ai", "agent", "system")


class Escalation(Base):
    """A tracked human-support case raised from a chat session.

    Attributes:
        case_number: Customer-facing six digit identifier, unique system wide.
        status: One of ``escalated``, ``pending`` or ``resolved``.
        case_owner_id: Agent responsible for follow-up; independent of which
            agent is live-chatting through the queue.
        email_thread_id: Correlation id of the e-mail conversation, if any.
    """

    __tablename__ = "escalations"
    __table_args__ = (
        Index("ix_escalations_case_number_unique", "case_number", unique=True),
        Index("ix_escalations_business_id", "business_id"),
        Index("ix_escalations_session_id", "session_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_number: Mapped[str] = mapped_column(String(length=16), nullable=False)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False
    )
    customer_name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(length=64))
    concern: Mapped[str | None] = mapped_column(String(length=255))
    description: Mapped[str | None] = mapped_column(Text())
    status: Mapped[str] = mapped_column(
        String(length=16),
        nullable=False,
        default="escalated",
        server_default=text("'escalated'"),
    )
    case_owner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL")
    )
    email_thread_id: Mapped[str | None] = mapped_column(String(length=255))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    activities: Mapped[list["Activity"]] = relationship(
        back_populates="escalation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Activity.created_at",
    )


class QueueEntry(Base):
    """A live-chat request waiting for, or matched with, an agent."""

    __tablename__ = "queue_entries"
    __table_args__ = (
        Index("ix_queue_entries_business_status", "business_id", "status", "requested_at"),
        Index("ix_queue_entries_escalation_id", "escalation_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    escalation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escalations.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(length=16),
        nullable=False,
        default="waiting",
        server_default=text("'waiting'"),
    )
    requested_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    agent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL")
    )
    assigned_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))

    escalation: Mapped[Escalation] = relationship(lazy="joined")


class AgentPresence(Base):
    """Availability of one agent within one business."""

    __tablename__ = "agent_presence"
    __table_args__ = (
        UniqueConstraint("agent_id", "business_id", name="uq_agent_presence_agent_business"),
        Index("ix_agent_presence_business_status", "business_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(length=16),
        nullable=False,
        default="offline",
        server_default=text("'offline'"),
    )
    last_active: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class ChatMessage(Base):
    """Persisted record of every message exchanged in a session.

    ``is_good_response`` is three-state: ``True``/``False`` once a customer
    rated an AI reply, ``None`` otherwise.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_session_created", "session_id", "created_at"),
        Index("ix_chat_messages_escalation_id", "escalation_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text(), nullable=False)
    sender_type: Mapped[str] = mapped_column(String(length=16), nullable=False)
    agent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL")
    )
    escalation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("escalations.id", ondelete="SET NULL")
    )
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    system_message_type: Mapped[str | None] = mapped_column(String(length=32))
    is_good_response: Mapped[bool | None] = mapped_column(nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Activity(Base):
    """An audit entry in an escalation's activity log."""

    __tablename__ = "activities"
    __table_args__ = (Index("ix_activities_escalation_id", "escalation_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    escalation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escalations.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(length=64), nullable=False)
    details: Mapped[str | None] = mapped_column(Text())
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    escalation: Mapped[Escalation] = relationship(back_populates="activities")


class Notification(Base):
    """A dashboard notification for a business."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_business_read", "business_id", "is_read"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(length=32), nullable=False)
    title: Mapped[str] = mapped_column(String(length=255), nullable=False)
    message: Mapped[str] = mapped_column(Text(), nullable=False)
    escalation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("escalations.id", ondelete="CASCADE")
    )
    is_read: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = [
    "Activity",
    "AgentPresence",
    "ChatMessage",
    "ESCALATION_STATUSES",
    "Escalation",
    "Notification",
    "PRESENCE_STATUSES",
    "QUEUE_OPEN_STATUSES",
    "QUEUE_STATUSES",
    "QueueEntry",
    "SENDER_TYPES",
]
