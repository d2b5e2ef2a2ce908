"""Tenant-facing models: businesses, their agents and customer sessions.

Business and agent records are managed by external CRUD surfaces; the
escalation engine only reads them.  Chat sessions are created lazily by the
conversation orchestrator on a customer's first message.
"""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base, utcnow


class Business(Base):
    """A tenant serving a chat widget to its customers.

    Attributes:
        id: Primary key.
        name: Display name used in replies and prompts.
        slug: Unique public identifier used by the widget URL.
        live_chat_enabled: When false, escalations become form submissions
            instead of queued live-chat hand-offs.
    """

    __tablename__ = "businesses"
    __table_args__ = (Index("ix_businesses_slug_unique", "slug", unique=True),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    slug: Mapped[str] = mapped_column(String(length=255), nullable=False)
    live_chat_enabled: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    agents: Mapped[list["Agent"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Agent(Base):
    """A human support agent working for one business."""

    __tablename__ = "agents"
    __table_args__ = (Index("ix_agents_business_id", "business_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    business: Mapped[Business] = relationship(back_populates="agents")


class ChatSession(Base):
    """A customer's interaction context with one business.

    Contact details are independently optional. ``escalation_attempts`` counts
    the turns that produced an escalation offer or hand-off and feeds the
    escalation scorer on later turns.
    """

    __tablename__ = "chat_sessions"
    __table_args__ = (Index("ix_chat_sessions_business_id", "business_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    customer_name: Mapped[str | None] = mapped_column(String(length=255))
    customer_email: Mapped[str | None] = mapped_column(String(length=320))
    customer_phone: Mapped[str | None] = mapped_column(String(length=64))
    escalation_attempts: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


__all__ = ["Agent", "Business", "ChatSession"]
