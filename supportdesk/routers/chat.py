"""Live-chat API: queue, completion, messages and AI response feedback."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..conversations.repository import (
    ChatMessageNotFoundError,
    ChatRepository,
    EscalationNotFoundError,
    FeedbackNotAllowedError,
    SessionNotFoundError,
    serialize_message,
)
from ..conversations.schemas import ChatMessageCreate, FeedbackUpdate
from ..escalation.queue import (
    InvalidTransitionError,
    QueueEntryNotFoundError,
    QueueService,
    serialize_queue_entry,
)
from ..models import Escalation
from ..models.session import get_db_session
from ..realtime.router import MessageRouter, get_message_router, post_chat_message

router = APIRouter(prefix="/chat", tags=["chat"])


@contextmanager
def _service_context(db: Session) -> Iterator[QueueService]:
    service = QueueService(db)
    try:
        yield service
        db.commit()
    except (QueueEntryNotFoundError, ChatMessageNotFoundError) as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (FeedbackNotAllowedError, ValueError) as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.get("/queue/{business_id}")
def list_queue(business_id: uuid.UUID, db: Session = Depends(get_db_session)) -> list[dict[str, Any]]:
    """Waiting customers for a business, oldest first, with case details."""

    with _service_context(db) as svc:
        return [serialize_queue_entry(entry) for entry in svc.waiting(business_id)]


@router.post("/queue/{queue_id}/complete")
async def complete_chat(
    queue_id: uuid.UUID,
    db: Session = Depends(get_db_session),
    messages: MessageRouter = Depends(get_message_router),
) -> dict[str, Any]:
    with _service_context(db) as svc:
        body = serialize_queue_entry(svc.complete(queue_id))
    await messages.dispatch(svc.outbox)
    return body


@router.post("/message", status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: ChatMessageCreate,
    db: Session = Depends(get_db_session),
    messages: MessageRouter = Depends(get_message_router),
) -> dict[str, Any]:
    """Store a chat message, then broadcast it to the case's chat room."""

    try:
        record, room = await post_chat_message(
            db,
            messages,
            business_id=payload.businessId,
            session_id=payload.sessionId,
            message=payload.message,
            sender_type=payload.senderType,
            agent_id=payload.agentId,
            escalation_id=payload.escalationId,
            attachments=[item.model_dump() for item in payload.attachments],
        )
    except (SessionNotFoundError, EscalationNotFoundError) as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to send message") from exc
    body = serialize_message(record)
    body["room"] = room
    return body


@router.delete("/queue/{queue_id}")
async def cancel_chat(
    queue_id: uuid.UUID,
    db: Session = Depends(get_db_session),
    messages: MessageRouter = Depends(get_message_router),
) -> dict[str, Any]:
    """Take a waiting or active customer out of the queue."""

    with _service_context(db) as svc:
        body = serialize_queue_entry(svc.cancel(queue_id))
    await messages.dispatch(svc.outbox)
    return body


@router.get("/session/{session_id}/messages")
def list_session_messages(session_id: uuid.UUID, db: Session = Depends(get_db_session)) -> list[dict[str, Any]]:
    repo = ChatRepository(db)
    return [serialize_message(record) for record in repo.list_messages(session_id)]


@router.get("/escalation/{escalation_id}/messages")
def list_escalation_messages(
    escalation_id: uuid.UUID,
    db: Session = Depends(get_db_session),
) -> list[dict[str, Any]]:
    """Live-chat transcript of one case, oldest first."""

    if db.get(Escalation, escalation_id) is None:
        raise HTTPException(status_code=404, detail="Escalation not found.")
    repo = ChatRepository(db)
    return [serialize_message(record) for record in repo.list_escalation_messages(escalation_id)]


@router.patch("/{chat_id}/feedback")
def update_feedback(
    chat_id: uuid.UUID,
    payload: FeedbackUpdate,
    db: Session = Depends(get_db_session),
) -> dict[str, Any]:
    """Record like, dislike or clear on an AI response."""

    with _service_context(db):
        record = ChatRepository(db).set_feedback(chat_id, payload.isGoodResponse)
        return serialize_message(record)
