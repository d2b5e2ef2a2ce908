"""One customer chat turn, end to end.

The orchestrator resolves the chat session, classifies and scores the
message, picks a reply path and persists both sides of the exchange:

1. Case follow-up: report the case status. Never escalates.
2. Immediate escalation (score 100): continue an existing case or prompt for
   a new one. Never sent to the text generator.
3. Otherwise answer from ranked knowledge (or a fallback when nothing
   matched), then append an escalation offer when the score calls for one.

Failures after validation never surface as exceptions: they become a
:class:`ChatTurnResult` carrying a human-readable message and an escalation
link, so the customer always has a next step.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..escalation.cases import CaseLookup, extract_case_number
from ..escalation.intents import Intent, classify
from ..escalation.scoring import EscalationScore, EscalationTier, score_message
from ..knowledge.ranker import KnowledgeItem, rank
from ..knowledge.repository import KnowledgeRepository, SqlAlchemyKnowledgeRepository
from ..models import Business, ChatSession
from ..settings import Settings, get_settings
from . import responses
from .generation import GenerationUnavailableError, KnowledgeAnswerer
from .repository import ChatRepository

logger = logging.getLogger(__name__)


class ChatValidationError(ValueError):
    """Raised for an empty or oversized customer message."""


class BusinessNotFoundError(RuntimeError):
    """Raised when the chat widget references an unknown business slug."""


@dataclass
class Reply:
    text: str
    escalation_generated: bool = False
    used_llm: bool = False


@dataclass
class ChatTurnResult:
    answer: str
    session_id: uuid.UUID | None = None
    escalation_suggested: bool = False
    customer_chat_id: uuid.UUID | None = None
    ai_chat_id: uuid.UUID | None = None
    context: dict[str, Any] = field(default_factory=dict)
    failure: str | None = None  # "unavailable" or "internal"

    @property
    def status_code(self) -> int:
        return {"unavailable": 503, "internal": 500}.get(self.failure or "", 200)


class ConversationOrchestrator:
    def __init__(
        self,
        session: Session,
        answerer: KnowledgeAnswerer | None = None,
        *,
        knowledge: KnowledgeRepository | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._answerer = answerer or KnowledgeAnswerer(settings=self._settings)
        self._knowledge = knowledge or SqlAlchemyKnowledgeRepository(session)
        self._chats = ChatRepository(session)
        self._cases = CaseLookup(session)

    # Validation and session resolution -----------------------------------------
    def _validate(self, query: str | None) -> str:
        text = (query or "").strip()
        if not text:
            raise ChatValidationError("Message is required.")
        limit = self._settings.chat_max_message_length
        if len(text) > limit:
            raise ChatValidationError(f"Message is too long. Maximum {limit} characters allowed.")
        return text

    def _resolve_session(
        self,
        business: Business,
        session_id: uuid.UUID | None,
        customer_details: dict[str, Any] | None,
    ) -> ChatSession:
        if session_id is not None:
            existing = self._chats.get_session(session_id)
            if existing is not None and existing.business_id == business.id:
                return existing
            logger.info("Session %s not found for business %s; starting a new one", session_id, business.slug)
        details = customer_details or {}
        chat_session = self._chats.create_session(
            business.id,
            customer_name=details.get("name"),
            customer_email=details.get("email"),
            customer_phone=details.get("phone"),
        )
        # The session must survive even if the rest of the turn fails.
        self._session.commit()
        return chat_session

    # Reply paths --------------------------------------------------------------
    def _case_followup(self, query: str, business: Business) -> Reply:
        number = extract_case_number(query)
        if number is None:
            return Reply(responses.ask_for_case_number_reply())
        status = self._cases.status(number, business.id)
        if status is None:
            return Reply(responses.case_status_not_found_reply(number))
        return Reply(responses.case_status_reply(status.case_number, status.status))

    def _immediate_escalation(self, query: str, business: Business, live_chat: bool) -> Reply:
        number = extract_case_number(query)
        if number is None:
            return Reply(responses.fresh_escalation_reply(business.name, live_chat), escalation_generated=True)
        case = self._cases.for_live_chat(number, business.id)
        if case is None:
            return Reply(responses.case_not_found_reply(number, live_chat), escalation_generated=True)
        return Reply(
            responses.continue_case_reply(case.case_number, case.status, live_chat),
            escalation_generated=True,
        )

    @staticmethod
    def _escalation_offer(
        intent: Intent,
        score: EscalationScore,
        live_chat: bool,
    ) -> str | None:
        if score.score >= 75:
            return responses.offer_suffix(live_chat)
        if score.tier is EscalationTier.SUGGEST_ALTERNATIVES and intent is Intent.PRICING_INQUIRY:
            return responses.pricing_offer_suffix(live_chat)
        if score.complex_topics and score.score >= 50:
            return responses.complex_topic_suffix(live_chat)
        return None

    async def _decide(
        self,
        query: str,
        business: Business,
        intent: Intent,
        score: EscalationScore,
        items: list[KnowledgeItem],
        history,
    ) -> Reply:
        live_chat = bool(business.live_chat_enabled)
        if intent is Intent.CASE_FOLLOWUP:
            return self._case_followup(query, business)
        if score.tier is EscalationTier.IMMEDIATE:
            return self._immediate_escalation(query, business, live_chat)

        if items:
            text, used_llm = await self._answerer.answer(
                query,
                business_name=business.name,
                items=items,
                intent=intent,
                history=history,
            )
        else:
            text, used_llm = responses.fallback_reply(intent, business.name), False

        offer = self._escalation_offer(intent, score, live_chat)
        if offer:
            return Reply(text + offer, escalation_generated=True, used_llm=used_llm)
        return Reply(text, used_llm=used_llm)

    # Persistence --------------------------------------------------------------
    def _persist(
        self,
        business: Business,
        chat_session: ChatSession,
        query: str,
        reply: Reply,
        customer_asked: bool = False,
    ) -> tuple[uuid.UUID | None, uuid.UUID | None]:
        """Store both messages; a storage failure is logged, never raised.

        Escalation attempts count only turns where the customer asked for a
        human, never offers the assistant appended on its own.
        """

        try:
            if reply.escalation_generated and customer_asked:
                self._chats.increment_escalation_attempts(chat_session)
            customer = self._chats.add_message(
                business_id=business.id,
                session_id=chat_session.id,
                message=query,
                sender_type="customer",
            )
            ai = self._chats.add_message(
                business_id=business.id,
                session_id=chat_session.id,
                message=reply.text,
                sender_type="ai",
            )
            self._session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to store chat turn for session %s", chat_session.id)
            self._session.rollback()
            return None, None
        return customer.id, ai.id

    # Entry point --------------------------------------------------------------
    async def handle(
        self,
        business_slug: str,
        query: str | None,
        *,
        session_id: uuid.UUID | None = None,
        customer_details: dict[str, Any] | None = None,
    ) -> ChatTurnResult:
        text = self._validate(query)

        live_chat = True
        resolved_id: uuid.UUID | None = None
        try:
            business = self._chats.business_by_slug(business_slug)
            if business is None:
                raise BusinessNotFoundError("Business not found.")
            live_chat = bool(business.live_chat_enabled)
            business_name = business.name

            chat_session = self._resolve_session(business, session_id, customer_details)
            resolved_id = chat_session.id
            history = self._chats.recent_history(chat_session.id, self._settings.chat_history_limit)
            intent = classify(text, history)
            score = score_message(
                text,
                history,
                chat_session.escalation_attempts or 0,
                customer_turns=self._chats.count_customer_messages(chat_session.id),
            )
            items = rank(text, self._knowledge.load_active(business.id))

            reply = await self._decide(text, business, intent, score, items, history)
            customer_asked = intent is Intent.ESCALATION_REQUEST or "explicit_request" in score.breakdown
            customer_id, ai_id = self._persist(business, chat_session, text, reply, customer_asked)

            logger.info(
                "Chat turn for %s: intent=%s score=%d tier=%s escalated=%s items=%d",
                business.slug,
                intent.value,
                score.score,
                score.tier.value,
                reply.escalation_generated,
                len(items),
            )
            return ChatTurnResult(
                answer=reply.text,
                session_id=chat_session.id,
                escalation_suggested=reply.escalation_generated,
                customer_chat_id=customer_id,
                ai_chat_id=ai_id,
                context={
                    "businessName": business_name,
                    "dataItemsAvailable": len(items),
                    "conversationLength": len(history) + 2,
                    "customerIntent": intent.value,
                    "escalationScore": score.score,
                    "escalationTier": score.tier.value,
                    "complexTopics": list(score.complex_topics),
                    "confidence": responses.response_confidence(text, items, history),
                    "isListingQuery": any(item.is_listing_query for item in items),
                    "usedLlm": reply.used_llm,
                },
            )
        except BusinessNotFoundError:
            raise
        except GenerationUnavailableError:
            logger.warning("Text generation unavailable for %s", business_slug, exc_info=True)
            self._session.rollback()
            return ChatTurnResult(
                answer=responses.unavailable_message(live_chat),
                session_id=resolved_id,
                failure="unavailable",
            )
        except Exception:
            logger.exception("Chat turn failed for %s", business_slug)
            self._session.rollback()
            return ChatTurnResult(
                answer=responses.internal_error_message(live_chat),
                session_id=resolved_id,
                failure="internal",
            )


__all__ = [
    "BusinessNotFoundError",
    "ChatTurnResult",
    "ChatValidationError",
    "ConversationOrchestrator",
]
