"""Customer-facing chat endpoint used by the embeddable widget."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..conversations.generation import KnowledgeAnswerer, build_generator
from ..conversations.orchestrator import (
    BusinessNotFoundError,
    ChatValidationError,
    ConversationOrchestrator,
)
from ..conversations.schemas import AskChatRequest, AskChatResponse
from ..models.session import get_db_session
from ..rate_limit import chat_rate_limit, limiter
from ..settings import get_settings

router = APIRouter(prefix="/ask", tags=["chat"])


def get_answerer(request: Request) -> KnowledgeAnswerer:
    """Return the process-wide answerer, building it on first use."""

    answerer = getattr(request.app.state, "answerer", None)
    if answerer is None:
        settings = get_settings()
        answerer = KnowledgeAnswerer(build_generator(settings), settings)
        request.app.state.answerer = answerer
    return answerer


@router.post("/chat/{business_slug}", response_model=AskChatResponse)
@limiter.limit(chat_rate_limit)
async def ask_chat(
    request: Request,
    business_slug: str,
    payload: AskChatRequest,
    db: Session = Depends(get_db_session),
    answerer: KnowledgeAnswerer = Depends(get_answerer),
):
    """Answer one customer message and report whether escalation was offered."""

    orchestrator = ConversationOrchestrator(db, answerer)
    details = payload.customerDetails.model_dump() if payload.customerDetails else None
    try:
        result = await orchestrator.handle(
            business_slug,
            payload.query,
            session_id=payload.sessionId,
            customer_details=details,
        )
    except ChatValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BusinessNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    if result.failure:
        return JSONResponse(status_code=result.status_code, content={"error": result.answer})
    return AskChatResponse(
        answer=result.answer,
        sessionId=result.session_id,
        escalationSuggested=result.escalation_suggested,
        customerChatId=result.customer_chat_id,
        aiChatId=result.ai_chat_id,
        context=result.context,
    )
