"""Escalation scoring for customer messages.

Each rule is a pure function from :class:`ScoringInput` to a non-negative
contribution. :func:`score_message` sums every rule, clamps the total to
``[0, 100]`` and maps it to an :class:`EscalationTier`. Adding a rule means
appending it to :data:`RULES`; nothing else needs to change.

Keyword rules match on the lower-cased message the way customers type:
``"agent"`` also fires on ``"agents"``.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Pattern, Sequence

MAX_SCORE = 100


class EscalationTier(str, Enum):
    """Discretised urgency bucket, lowest first."""

    BASELINE = "baseline"
    HANDLE_GRACEFULLY = "handle_gracefully"
    SUGGEST_ALTERNATIVES = "suggest_alternatives"
    OFFER_ESCALATION = "offer_escalation"
    IMMEDIATE = "immediate_escalation"


TIER_THRESHOLDS: tuple[tuple[int, EscalationTier], ...] = (
    (100, EscalationTier.IMMEDIATE),
    (75, EscalationTier.OFFER_ESCALATION),
    (50, EscalationTier.SUGGEST_ALTERNATIVES),
    (25, EscalationTier.HANDLE_GRACEFULLY),
)


def tier_for(score: int) -> EscalationTier:
    """Return the highest tier whose threshold ``score`` reaches."""

    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return EscalationTier.BASELINE


@dataclass(frozen=True)
class ConversationTurn:
    """One immutable exchange in a session's history."""

    role: str  # "customer" or "assistant"
    text: str
    timestamp: dt.datetime | None = None


@dataclass(frozen=True)
class ScoringInput:
    message: str
    history: Sequence[ConversationTurn] = ()
    escalation_attempts: int = 0
    # Prior customer messages in the whole session; ``history`` may be a window.
    customer_turns: int | None = None

    @property
    def lowered(self) -> str:
        return self.message.lower()

    @property
    def customer_turn_count(self) -> int:
        counted = len(self.turns("customer"))
        if self.customer_turns is None:
            return counted
        return max(self.customer_turns, counted)

    def turns(self, role: str) -> list[ConversationTurn]:
        return [turn for turn in self.history if turn.role == role]


@dataclass(frozen=True)
class EscalationScore:
    """Derived, never persisted. ``breakdown`` lists every rule that fired."""

    score: int
    tier: EscalationTier
    breakdown: dict[str, int] = field(default_factory=dict)
    complex_topics: tuple[str, ...] = ()


EXPLICIT_REQUEST_KEYWORDS = (
    "speak to human",
    "talk to person",
    "escalate",
    "supervisor",
    "manager",
    "representative",
    "agent",
    "support team",
    "talk to someone",
    "human help",
    "real person",
    "human representative",
)

FRUSTRATION_BUCKETS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("angry", "furious", "outraged"), 60),
    (("frustrated", "annoyed", "upset"), 45),
    (("disappointed", "unsatisfied", "unhappy"), 30),
    (("terrible", "awful", "horrible", "worst"), 50),
    (("useless", "pointless", "waste of time"), 55),
)

URGENCY_BUCKETS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("urgent", "emergency", "asap", "immediately"), 40),
    (("important", "critical", "serious"), 25),
    (("complex", "complicated", "difficult"), 15),
)

CRITICAL_INFO_KEYWORDS = (
    "price",
    "cost",
    "appointment",
    "booking",
    "schedule",
    "availability",
    "order",
    "delivery",
    "contact",
    "phone",
    "email",
)

UNHELPFUL_PHRASES = (
    "don't have",
    "don't know",
    "not available",
    "unfortunately",
    "can't help",
    "unable to",
    "not sure",
)


def _topic(weight: int, *fragments: str) -> tuple[Pattern[str], int]:
    return re.compile(r"\b(?:" + "|".join(fragments) + ")"), weight


# Matched on word starts so "sue" never fires inside "issue".
COMPLEX_TOPICS: dict[str, tuple[Pattern[str], int]] = {
    "returns_refunds": _topic(60, "returns?", "returning", "refund", "money back", "exchange"),
    "order_problems": _topic(
        55, "cancel(?:l?ing)? (?:my )?order", "change (?:my )?order", "wrong order",
        "missing item", "order (?:problem|issue)",
    ),
    "billing_disputes": _topic(
        60, "dispute", "billing issue", "payment problem", "charged twice",
        "double charged", "overcharged", "chargeback",
    ),
    "complaints": _topic(50, "complaint", "complain"),
    "account_access": _topic(
        45, "account locked", "locked out", "can't log ?in", "cannot log ?in",
        "reset my password", "hacked",
    ),
    "technical_faults": _topic(40, "technical issue", "not working", "broken", "crash", "malfunction"),
    "legal": _topic(70, "legal", "lawyer", "attorney", "lawsuit", r"sue\b", "suing", "court"),
    "warranty": _topic(55, "warranty", "guarantee", "defective", "damaged"),
    "custom_bulk_orders": _topic(45, "custom order", "bulk", "wholesale", "customi[sz]"),
    "shipping": _topic(
        50, "lost package", "shipping", "shipment", "delivery", "tracking", "never arrived",
        "hasn't arrived",
    ),
}


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _bucket_sum(text: str, buckets: Sequence[tuple[Sequence[str], int]]) -> int:
    return sum(weight for words, weight in buckets if _contains_any(text, words))


def explicit_request(data: ScoringInput) -> int:
    return MAX_SCORE if _contains_any(data.lowered, EXPLICIT_REQUEST_KEYWORDS) else 0


def frustration(data: ScoringInput) -> int:
    return _bucket_sum(data.lowered, FRUSTRATION_BUCKETS)


def prior_attempts(data: ScoringInput) -> int:
    return max(data.escalation_attempts, 0) * 20


def urgency(data: ScoringInput) -> int:
    return _bucket_sum(data.lowered, URGENCY_BUCKETS)


def repeated_questions(data: ScoringInput) -> int:
    return 15 if data.customer_turn_count > 2 else 0


def unhelpful_answers(data: ScoringInput) -> int:
    """Reward a history of assistant replies that could not help."""

    matches = sum(
        1
        for turn in data.turns("assistant")
        if _contains_any(turn.text.lower(), UNHELPFUL_PHRASES)
    )
    if matches >= 3:
        contribution = 50
    elif matches == 2:
        contribution = 35
    elif matches == 1:
        contribution = 15
    else:
        contribution = 0
    if data.customer_turn_count >= 5 and matches >= 2:
        contribution += 20
    return contribution


def critical_info(data: ScoringInput) -> int:
    return 10 if _contains_any(data.lowered, CRITICAL_INFO_KEYWORDS) else 0


def matched_complex_topics(message: str) -> tuple[str, ...]:
    lowered = message.lower()
    return tuple(name for name, (pattern, _) in COMPLEX_TOPICS.items() if pattern.search(lowered))


def complex_topics(data: ScoringInput) -> int:
    return sum(COMPLEX_TOPICS[name][1] for name in matched_complex_topics(data.message))


ScoringRule = Callable[[ScoringInput], int]

RULES: tuple[tuple[str, ScoringRule], ...] = (
    ("explicit_request", explicit_request),
    ("frustration", frustration),
    ("prior_attempts", prior_attempts),
    ("urgency", urgency),
    ("repeated_questions", repeated_questions),
    ("unhelpful_answers", unhelpful_answers),
    ("critical_info", critical_info),
    ("complex_topics", complex_topics),
)


def score_message(
    message: str,
    history: Sequence[ConversationTurn] = (),
    escalation_attempts: int = 0,
    customer_turns: int | None = None,
) -> EscalationScore:
    """Score ``message`` for how urgently it needs a human.

    ``customer_turns`` is the session's total count of earlier customer
    messages. When omitted it is counted from ``history``.
    """

    data = ScoringInput(
        message=message,
        history=tuple(history),
        escalation_attempts=escalation_attempts,
        customer_turns=customer_turns,
    )
    breakdown: dict[str, int] = {}
    for name, rule in RULES:
        contribution = rule(data)
        if contribution:
            breakdown[name] = contribution
    score = min(max(sum(breakdown.values()), 0), MAX_SCORE)
    return EscalationScore(
        score=score,
        tier=tier_for(score),
        breakdown=breakdown,
        complex_topics=matched_complex_topics(message),
    )


__all__ = [
    "COMPLEX_TOPICS",
    "ConversationTurn",
    "EscalationScore",
    "EscalationTier",
    "RULES",
    "ScoringInput",
    "score_message",
    "tier_for",
]
