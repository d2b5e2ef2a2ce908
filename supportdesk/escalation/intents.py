"""Intent classification for a single customer utterance.

Rules are evaluated in order and the first match wins. A human-request
phrase combined with a case reference is treated as a returning customer
asking to continue an existing case, so it is checked before the plain
case follow-up rule.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Sequence

from .scoring import ConversationTurn


class Intent(str, Enum):
    CASE_FOLLOWUP = "case_followup"
    ESCALATION_REQUEST = "escalation_request"
    GREETING = "greeting"
    COMPLAINT = "complaint"
    PRICING_INQUIRY = "pricing_inquiry"
    INFORMATION_REQUEST = "information_request"


HUMAN_REQUEST = re.compile(r"speak to|talk to|human|agent|representative|manager|supervisor")
CASE_REFERENCE = re.compile(r"case|ticket|reference|escalation")
CASE_FOLLOWUP = re.compile(
    r"case|ticket|reference|follow.*up|status.*case|case.*status|escalation.*number|case.*number"
)
GREETING = re.compile(r"^(?:hi|hello|hey|good morning|good afternoon|good evening)\b")
COMPLAINT = re.compile(r"complaint|problem|issue|wrong|error|broken|not working|disappointed")
PRICING = re.compile(r"price|cost|how much|fee|charge|payment")


def classify(message: str, history: Sequence[ConversationTurn] = ()) -> Intent:
    """Return the intent of ``message``.

    ``history`` is accepted for interface symmetry with the scorer but is not
    consulted.
    """

    text = message.strip().lower()
    wants_human = HUMAN_REQUEST.search(text) is not None

    if wants_human and CASE_REFERENCE.search(text):
        return Intent.ESCALATION_REQUEST
    if not wants_human and CASE_FOLLOWUP.search(text):
        return Intent.CASE_FOLLOWUP
    if GREETING.search(text):
        return Intent.GREETING
    if wants_human:
        return Intent.ESCALATION_REQUEST
    if COMPLAINT.search(text):
        return Intent.COMPLAINT
    if PRICING.search(text):
        return Intent.PRICING_INQUIRY
    return Intent.INFORMATION_REQUEST


__all__ = ["Intent", "classify"]
