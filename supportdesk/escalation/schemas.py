"""Pydantic schemas for escalation, queue and agent presence APIs.

Required-field checks live in the services so that a missing field is a
400 with a readable message rather than a generic 422.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel


class EscalationCreate(BaseModel):
    businessId: uuid.UUID | None = None
    sessionId: uuid.UUID | None = None
    customerName: str | None = None
    customerEmail: str | None = None
    customerPhone: str | None = None
    concern: str | None = None
    description: str | None = None


class StatusUpdate(BaseModel):
    status: str | None = None


class CaseOwnerUpdate(BaseModel):
    caseOwner: str | None = None


class AgentStatusUpdate(BaseModel):
    businessId: uuid.UUID
    status: str | None = None
