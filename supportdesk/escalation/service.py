"""Escalation case lifecycle: creation, status, case owner and activity log."""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..conversations.repository import EscalationNotFoundError, SessionNotFoundError
from ..models import Activity, Agent, Business, ChatSession, Escalation, Notification, QueueEntry
from ..models.support import ESCALATION_STATUSES
from ..realtime.hub import notification_room
from ..realtime.router import Outbox
from .queue import AgentNotFoundError, Assignment, InvalidStatusError, QueueService

logger = logging.getLogger(__name__)

SUBMITTED_MESSAGE = (
    "Your support request has been submitted successfully. "
    "Our team will review it and get back to you."
)


class BusinessNotFoundError(RuntimeError):
    """Raised when a business id or slug does not exist."""


class EscalationValidationError(ValueError):
    """Raised when required case fields are missing."""


class CaseNumberUnavailableError(RuntimeError):
    """Raised when no unused case number could be generated."""


def generate_case_number() -> str:
    """Return a random six digit case number."""

    return str(random.randint(100000, 999999))


@dataclass
class EscalationRequest:
    business_id: uuid.UUID
    session_id: uuid.UUID
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    concern: str | None = None
    description: str | None = None


@dataclass
class EscalationPage:
    escalations: list[Escalation]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


@dataclass
class CreatedEscalation:
    escalation: Escalation
    live_chat_enabled: bool
    queue_entry: QueueEntry | None = None
    assignments: list[Assignment] | None = None


def _title(status: str) -> str:
    return status[:1].upper() + status[1:]


def serialize_escalation(escalation: Escalation) -> dict[str, Any]:
    return {
        "_id": str(escalation.id),
        "businessId": str(escalation.business_id),
        "sessionId": str(escalation.session_id),
        "caseNumber": escalation.case_number,
        "customerName": escalation.customer_name,
        "customerEmail": escalation.customer_email,
        "customerPhone": escalation.customer_phone,
        "concern": escalation.concern,
        "description": escalation.description,
        "status": escalation.status,
        "caseOwner": str(escalation.case_owner_id) if escalation.case_owner_id else None,
        "emailThreadId": escalation.email_thread_id,
        "createdAt": escalation.created_at,
        "updatedAt": escalation.updated_at,
    }


def serialize_activity(activity: Activity) -> dict[str, Any]:
    return {
        "_id": str(activity.id),
        "escalationId": str(activity.escalation_id),
        "action": activity.action,
        "details": activity.details,
        "createdAt": activity.created_at,
    }


class EscalationService:
    """Creates cases and applies explicit status and owner changes.

    A new case always starts ``escalated``. When the business has live chat
    enabled the case is queued and an assignment attempt runs immediately;
    otherwise it is recorded as a form submission with no queue entry.
    """

    def __init__(
        self,
        session: Session,
        outbox: Outbox | None = None,
        *,
        number_factory: Callable[[], str] = generate_case_number,
        max_attempts: int = 20,
    ) -> None:
        self._session = session
        self.outbox = outbox if outbox is not None else Outbox()
        self.queue = QueueService(session, self.outbox)
        self._number_factory = number_factory
        self._max_attempts = max_attempts

    # Lookups ------------------------------------------------------------------
    def get(self, escalation_id: uuid.UUID) -> Escalation:
        escalation = self._session.get(Escalation, escalation_id)
        if escalation is None:
            raise EscalationNotFoundError("Escalation not found.")
        return escalation

    def activity(self, escalation_id: uuid.UUID) -> list[Activity]:
        self.get(escalation_id)
        stmt = (
            select(Activity)
            .where(Activity.escalation_id == escalation_id)
            .order_by(Activity.created_at.asc())
        )
        return list(self._session.scalars(stmt))

    def for_business(
        self,
        business_id: uuid.UUID,
        *,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> EscalationPage:
        """Newest-first page of a business's cases.

        ``status`` of ``None`` or ``"all"`` disables the status filter.
        ``search`` matches case number, customer name or email, ignoring case.
        """

        if self._session.get(Business, business_id) is None:
            raise BusinessNotFoundError("Business not found.")
        if status not in (None, "", "all") and status not in ESCALATION_STATUSES:
            raise InvalidStatusError('Invalid status. Must be "escalated", "resolved", or "pending".')
        page, limit = max(page, 1), max(limit, 1)

        conditions = [Escalation.business_id == business_id]
        if status not in (None, "", "all"):
            conditions.append(Escalation.status == status)
        term = (search or "").strip()
        if term:
            pattern = f"%{term.lower()}%"
            conditions.append(
                or_(
                    Escalation.case_number.like(pattern),
                    func.lower(Escalation.customer_name).like(pattern),
                    func.lower(Escalation.customer_email).like(pattern),
                )
            )

        total = self._session.scalar(select(func.count(Escalation.id)).where(*conditions)) or 0
        stmt = (
            select(Escalation)
            .where(*conditions)
            .order_by(Escalation.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return EscalationPage(list(self._session.scalars(stmt)), int(total), page, limit)

    def for_session(self, session_id: uuid.UUID) -> list[Escalation]:
        stmt = (
            select(Escalation)
            .where(Escalation.session_id == session_id)
            .order_by(Escalation.created_at.desc())
        )
        return list(self._session.scalars(stmt))

    def log_activity(self, escalation_id: uuid.UUID, action: str, details: str | None = None) -> Activity:
        record = Activity(escalation_id=escalation_id, action=action, details=details)
        self._session.add(record)
        self._session.flush()
        return record

    # Creation -----------------------------------------------------------------
    def _case_number_taken(self, case_number: str) -> bool:
        stmt = select(Escalation.id).where(Escalation.case_number == case_number).limit(1)
        return self._session.scalars(stmt).first() is not None

    def _fresh_case_number(self) -> str:
        for _ in range(self._max_attempts):
            candidate = self._number_factory()
            if not self._case_number_taken(candidate):
                return candidate
        raise CaseNumberUnavailableError("Could not generate a unique case number")

    def _insert_case(self, request: EscalationRequest) -> Escalation:
        """Insert the case, retrying when the unique index rejects the number.

        The insert is the first write of the unit of work, so rolling back a
        rejected attempt discards nothing else.
        """

        for attempt in range(1, self._max_attempts + 1):
            escalation = Escalation(
                case_number=self._fresh_case_number(),
                business_id=request.business_id,
                session_id=request.session_id,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
                customer_phone=request.customer_phone,
                concern=request.concern,
                description=request.description,
                status="escalated",
            )
            self._session.add(escalation)
            try:
                self._session.flush()
            except IntegrityError:
                self._session.rollback()
                logger.warning("Case number collision on insert (attempt %d); retrying", attempt)
                continue
            return escalation
        raise CaseNumberUnavailableError("Could not generate a unique case number")

    def _validate(self, request: EscalationRequest) -> None:
        missing = [
            name
            for name, value in (
                ("businessId", request.business_id),
                ("sessionId", request.session_id),
                ("customerName", request.customer_name),
                ("customerEmail", request.customer_email),
            )
            if not value or (isinstance(value, str) and not value.strip())
        ]
        if missing:
            raise EscalationValidationError(f"Missing required fields: {', '.join(missing)}.")

    def create(self, request: EscalationRequest) -> CreatedEscalation:
        self._validate(request)
        business = self._session.get(Business, request.business_id)
        if business is None:
            raise BusinessNotFoundError("Business not found.")
        chat_session = self._session.get(ChatSession, request.session_id)
        if chat_session is None or chat_session.business_id != business.id:
            raise SessionNotFoundError("Session not found.")
        live_chat_enabled = bool(business.live_chat_enabled)
        business_id = business.id

        escalation = self._insert_case(request)
        logger.info("Created case %s for business %s", escalation.case_number, business_id)
        self.log_activity(
            escalation.id,
            "Case Created",
            f"Case {escalation.case_number} created for {escalation.customer_name}.",
        )
        self._notify_new_case(escalation)

        result = CreatedEscalation(escalation=escalation, live_chat_enabled=live_chat_enabled)
        if live_chat_enabled:
            result.queue_entry = self.queue.enqueue(escalation)
            result.assignments = self.queue.try_assign(business_id)
        return result

    def _notify_new_case(self, escalation: Escalation) -> Notification:
        notification = Notification(
            business_id=escalation.business_id,
            kind="case_created",
            title=f"New case #{escalation.case_number}",
            message=f"{escalation.customer_name}: {escalation.concern or 'General inquiry'}",
            escalation_id=escalation.id,
        )
        self._session.add(notification)
        self._session.flush()
        self.outbox.emit(
            notification_room(escalation.business_id),
            "new_notification",
            {
                "_id": str(notification.id),
                "type": notification.kind,
                "title": notification.title,
                "message": notification.message,
                "caseId": str(escalation.id),
                "caseNumber": escalation.case_number,
                "customerName": escalation.customer_name,
                "link": f"/dashboard/escalations/{escalation.id}",
                "isRead": False,
                "createdAt": notification.created_at,
            },
        )
        return notification

    # Updates ------------------------------------------------------------------
    def update_status(self, escalation_id: uuid.UUID, status: str) -> Escalation:
        if status not in ESCALATION_STATUSES:
            raise InvalidStatusError('Invalid status. Must be "escalated", "resolved", or "pending".')
        escalation = self.get(escalation_id)
        previous = escalation.status
        escalation.status = status
        self._session.flush()
        self.log_activity(
            escalation.id,
            "Change Status",
            f"Set status from {_title(previous)} to {_title(status)}.",
        )
        return escalation

    def update_case_owner(self, escalation_id: uuid.UUID, case_owner: str | uuid.UUID | None) -> Escalation:
        """Assign or clear the owning agent; empty values unassign.

        The agent must belong to the case's business.
        """

        escalation = self.get(escalation_id)
        owner_id: uuid.UUID | None = None
        agent: Agent | None = None
        if case_owner not in (None, ""):
            try:
                owner_id = case_owner if isinstance(case_owner, uuid.UUID) else uuid.UUID(str(case_owner))
            except ValueError as exc:
                raise AgentNotFoundError("Invalid agent ID. Agent not found.") from exc
            agent = self._session.get(Agent, owner_id)
            if agent is None or agent.business_id != escalation.business_id:
                raise AgentNotFoundError("Invalid agent ID. Agent not found.")

        escalation.case_owner_id = owner_id
        self._session.flush()
        if agent is not None:
            self.log_activity(escalation.id, "Case Owner Assigned", f"Case assigned to {agent.name}")
        else:
            self.log_activity(escalation.id, "Case Owner Unassigned", "Case unassigned")
        return escalation


__all__ = [
    "BusinessNotFoundError",
    "CaseNumberUnavailableError",
    "CreatedEscalation",
    "EscalationNotFoundError",
    "EscalationPage",
    "EscalationRequest",
    "EscalationService",
    "EscalationValidationError",
    "SUBMITTED_MESSAGE",
    "SessionNotFoundError",
    "generate_case_number",
    "serialize_activity",
    "serialize_escalation",
]
