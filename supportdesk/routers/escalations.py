"""Escalation case API: creation, lookup, status, case owner and activity."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..escalation import schemas
from ..escalation.queue import AgentNotFoundError, InvalidStatusError, serialize_queue_entry
from ..escalation.service import (
    SUBMITTED_MESSAGE,
    BusinessNotFoundError,
    EscalationNotFoundError,
    EscalationRequest,
    EscalationService,
    EscalationValidationError,
    SessionNotFoundError,
    serialize_activity,
    serialize_escalation,
)
from ..models.session import get_db_session
from ..realtime.router import MessageRouter, get_message_router

router = APIRouter(prefix="/escalation", tags=["escalation"])


@contextmanager
def _service_context(db: Session) -> Iterator[EscalationService]:
    service = EscalationService(db)
    try:
        yield service
        db.commit()
    except (EscalationValidationError, InvalidStatusError, AgentNotFoundError) as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (EscalationNotFoundError, BusinessNotFoundError, SessionNotFoundError) as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_escalation(
    payload: schemas.EscalationCreate,
    db: Session = Depends(get_db_session),
    messages: MessageRouter = Depends(get_message_router),
) -> dict[str, Any]:
    """Open a case; with live chat enabled the customer is queued for an agent."""

    with _service_context(db) as svc:
        created = svc.create(
            EscalationRequest(
                business_id=payload.businessId,
                session_id=payload.sessionId,
                customer_name=payload.customerName,
                customer_email=payload.customerEmail,
                customer_phone=payload.customerPhone,
                concern=payload.concern,
                description=payload.description,
            )
        )
        escalation = created.escalation
        if not created.live_chat_enabled:
            body = {
                "_id": str(escalation.id),
                "caseNumber": escalation.case_number,
                "enableLiveChat": False,
                "message": SUBMITTED_MESSAGE,
                "success": True,
            }
        else:
            body = serialize_escalation(escalation)
            body["enableLiveChat"] = True
            if created.queue_entry is not None:
                body["queue"] = serialize_queue_entry(created.queue_entry)
    await messages.dispatch(svc.outbox)
    return body


@router.get("/business/{business_id}")
def list_business_escalations(
    business_id: uuid.UUID,
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db_session),
) -> dict[str, Any]:
    """Newest-first cases for a business; ``status=all`` disables the filter."""

    with _service_context(db) as svc:
        result = svc.for_business(business_id, status=status_filter, search=search, page=page, limit=limit)
        return {
            "escalations": [serialize_escalation(item) for item in result.escalations],
            "total": result.total,
            "page": result.page,
            "limit": result.limit,
            "totalPages": result.total_pages,
        }


@router.get("/session/{session_id}")
def list_session_escalations(session_id: uuid.UUID, db: Session = Depends(get_db_session)) -> list[dict[str, Any]]:
    with _service_context(db) as svc:
        return [serialize_escalation(item) for item in svc.for_session(session_id)]


@router.get("/{escalation_id}")
def get_escalation(escalation_id: uuid.UUID, db: Session = Depends(get_db_session)) -> dict[str, Any]:
    with _service_context(db) as svc:
        return serialize_escalation(svc.get(escalation_id))


@router.patch("/{escalation_id}/status")
def update_status(
    escalation_id: uuid.UUID,
    payload: schemas.StatusUpdate,
    db: Session = Depends(get_db_session),
) -> dict[str, Any]:
    with _service_context(db) as svc:
        return serialize_escalation(svc.update_status(escalation_id, payload.status or ""))


@router.patch("/{escalation_id}/case-owner")
def update_case_owner(
    escalation_id: uuid.UUID,
    payload: schemas.CaseOwnerUpdate,
    db: Session = Depends(get_db_session),
) -> dict[str, Any]:
    with _service_context(db) as svc:
        return serialize_escalation(svc.update_case_owner(escalation_id, payload.caseOwner))


@router.get("/{escalation_id}/activity")
def list_activity(escalation_id: uuid.UUID, db: Session = Depends(get_db_session)) -> list[dict[str, Any]]:
    with _service_context(db) as svc:
        return [serialize_activity(item) for item in svc.activity(escalation_id)]
