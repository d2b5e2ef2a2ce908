"""Agent presence API."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..escalation import schemas
from ..escalation.queue import AgentNotFoundError, InvalidStatusError, QueueService, serialize_presence
from ..models.session import get_db_session
from ..realtime.router import MessageRouter, get_message_router

router = APIRouter(prefix="/agents", tags=["agents"])


@contextmanager
def _service_context(db: Session) -> Iterator[QueueService]:
    service = QueueService(db)
    try:
        yield service
        db.commit()
    except InvalidStatusError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AgentNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.put("/{agent_id}/status")
async def update_agent_status(
    agent_id: uuid.UUID,
    payload: schemas.AgentStatusUpdate,
    db: Session = Depends(get_db_session),
    messages: MessageRouter = Depends(get_message_router),
) -> dict[str, Any]:
    """Set available/away/in-chat; becoming available may pull the next customer."""

    with _service_context(db) as svc:
        presence = svc.set_agent_status(agent_id, payload.businessId, payload.status or "")
        body = serialize_presence(presence)
    await messages.dispatch(svc.outbox)
    return body


@router.get("/status/{business_id}")
def list_agent_statuses(business_id: uuid.UUID, db: Session = Depends(get_db_session)) -> list[dict[str, Any]]:
    with _service_context(db) as svc:
        return [serialize_presence(presence, agent) for presence, agent in svc.agent_statuses(business_id)]
