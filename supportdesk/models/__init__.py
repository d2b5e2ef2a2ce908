"""SQLAlchemy declarative base and the support-desk models.

This package hosts the SQLAlchemy models used across the backend.  It exposes a
single declarative ``Base`` class that other modules can import when creating
tables.  Individual models live in dedicated modules within this package.
"""

from __future__ import annotations

import datetime as dt

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


def utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


# Re-export the models so callers can write ``from supportdesk.models import
# Escalation`` instead of touching the individual modules.
from .business import Agent, Business, ChatSession  # noqa: E402
from .knowledge import FAQ, Policy, Product, Service  # noqa: E402
from .support import (  # noqa: E402
    Activity,
    AgentPresence,
    ChatMessage,
    Escalation,
    Notification,
    QueueEntry,
)


__all__ = [
    "Activity",
    "Agent",
    "AgentPresence",
    "Base",
    "Business",
    "ChatMessage",
    "ChatSession",
    "Escalation",
    "FAQ",
    "Notification",
    "Policy",
    "Product",
    "QueueEntry",
    "Service",
    "utcnow",
]
