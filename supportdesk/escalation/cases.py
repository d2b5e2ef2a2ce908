"""Case-number extraction and tenant-scoped case lookup."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Escalation

_NUMBER = r"(?=[A-Z0-9]*\d)([A-Z0-9]{6,})\b"
_PREFIX_SUFFIX = r"\s*(?:number|no\.?|id)?\s*(?:is\s+)?[#:]?\s*"

# Ordered; the first pattern that matches wins. Every candidate must contain a
# digit so words like "supervisor" are never read as case numbers.
CASE_NUMBER_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        rf"\bcase{_PREFIX_SUFFIX}{_NUMBER}",
        rf"\bticket{_PREFIX_SUFFIX}{_NUMBER}",
        rf"\breference{_PREFIX_SUFFIX}{_NUMBER}",
        rf"\bescalation{_PREFIX_SUFFIX}{_NUMBER}",
        rf"#\s*{_NUMBER}",
        r"\b(?=[A-Z0-9]*\d)([A-Z0-9]{8,})\b",
    )
)


def extract_case_number(text: str) -> str | None:
    """Return the first case number mentioned in ``text``, upper-cased."""

    for pattern in CASE_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).upper()
    return None


@dataclass(frozen=True)
class CaseStatus:
    case_number: str
    status: str


@dataclass(frozen=True)
class CaseForLiveChat:
    escalation_id: uuid.UUID
    case_number: str
    session_id: uuid.UUID
    status: str
    customer_name: str
    customer_email: str


class CaseLookup:
    """Finds cases by number, always filtered by the owning business."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _find(self, case_number: str, business_id: uuid.UUID) -> Escalation | None:
        stmt = select(Escalation).where(
            Escalation.case_number == case_number,
            Escalation.business_id == business_id,
        )
        return self._session.scalars(stmt).first()

    def status(self, case_number: str, business_id: uuid.UUID) -> CaseStatus | None:
        escalation = self._find(case_number, business_id)
        if escalation is None:
            return None
        return CaseStatus(case_number=escalation.case_number, status=escalation.status)

    def for_live_chat(self, case_number: str, business_id: uuid.UUID) -> CaseForLiveChat | None:
        escalation = self._find(case_number, business_id)
        if escalation is None:
            return None
        return CaseForLiveChat(
            escalation_id=escalation.id,
            case_number=escalation.case_number,
            session_id=escalation.session_id,
            status=escalation.status,
            customer_name=escalation.customer_name,
            customer_email=escalation.customer_email,
        )


__all__ = [
    "CASE_NUMBER_PATTERNS",
    "CaseForLiveChat",
    "CaseLookup",
    "CaseStatus",
    "extract_case_number",
]
