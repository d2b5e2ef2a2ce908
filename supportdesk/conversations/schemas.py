"""Pydantic schemas for the customer chat and chat message APIs."""

from __future__ import annotations

import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field


class CustomerDetails(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class AskChatRequest(BaseModel):
    query: str | None = None
    sessionId: uuid.UUID | None = None
    customerDetails: CustomerDetails | None = None


class AskChatResponse(BaseModel):
    answer: str
    sessionId: uuid.UUID | None = None
    escalationSuggested: bool = False
    customerChatId: uuid.UUID | None = None
    aiChatId: uuid.UUID | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class Attachment(BaseModel):
    name: str | None = None
    url: str
    type: str | None = None
    size: int | None = None


class ChatMessageCreate(BaseModel):
    businessId: uuid.UUID
    sessionId: uuid.UUID
    message: str = Field(min_length=1)
    senderType: Literal["customer", "agent", "ai", "system"] = "customer"
    agentId: uuid.UUID | None = None
    escalationId: uuid.UUID | None = None
    attachments: list[Attachment] = Field(default_factory=list)


class FeedbackUpdate(BaseModel):
    """``true`` for like, ``false`` for dislike, ``null`` to clear."""

    isGoodResponse: bool | None = None
