"""Detection of "list everything of type X" questions.

Listing intent is a structural signal carried by the phrasing ("what do you
sell", "show me your policies"), so the patterns run against the raw query
before any stop-word stripping.
"""

from __future__ import annotations

import re
from typing import Final, Pattern

KNOWLEDGE_TYPES: Final[tuple[str, ...]] = ("faq", "product", "service", "policy")

_LIST_VERBS = r"(?:show|list|see|view|tell me about|give me|display)"


def _compile(patterns: list[str]) -> tuple[Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


LISTING_PATTERNS: Final[dict[str, tuple[Pattern[str], ...]]] = {
    "product": _compile(
        [
            r"\bwhat\s+(?:products|items|goods)\s+(?:do|does|can)\s+(?:you|they|we)\b",
            r"\bwhat\s+(?:do|does)\s+(?:you|they)\s+(?:sell|offer|have\s+for\s+sale)\b",
            rf"\b{_LIST_VERBS}\s+(?:me\s+)?(?:all\s+)?(?:of\s+)?(?:your|the|all)\s+(?:products|items)\b",
            r"\b(?:all|every)\s+(?:your\s+)?products\b",
            r"\bproducts?\s+(?:list|catalog(?:ue)?)\b",
            r"\bwhat(?:'s| is)\s+(?:in\s+)?(?:your|the)\s+catalog(?:ue)?\b",
            r"\bwhat\s+(?:products|items)\s+(?:are\s+)?(?:available|in\s+stock)\b",
        ]
    ),
    "service": _compile(
        [
            r"\bwhat\s+services\s+(?:do|does|can)\s+(?:you|they|we)\b",
            r"\bwhat\s+(?:kind|kinds|type|types)\s+of\s+services\b",
            rf"\b{_LIST_VERBS}\s+(?:me\s+)?(?:all\s+)?(?:of\s+)?(?:your|the|all)\s+services\b",
            r"\b(?:all|every)\s+(?:your\s+)?services\b",
            r"\bservices?\s+(?:list|menu)\b",
            r"\bwhat\s+services\s+(?:are\s+)?(?:available|offered)\b",
        ]
    ),
    "policy": _compile(
        [
            r"\bwhat\s+(?:are\s+)?(?:your|the)\s+policies\b",
            r"\bwhat\s+policies\s+(?:do|does)\s+(?:you|they)\s+have\b",
            rf"\b{_LIST_VERBS}\s+(?:me\s+)?(?:all\s+)?(?:of\s+)?(?:your|the|all)\s+policies\b",
            r"\b(?:all|every)\s+(?:your\s+)?policies\b",
            r"\bpolic(?:y|ies)\s+list\b",
        ]
    ),
    "faq": _compile(
        [
            r"\bwhat\s+(?:are\s+)?(?:your|the)\s+(?:faqs?|frequently\s+asked\s+questions)\b",
            rf"\b{_LIST_VERBS}\s+(?:me\s+)?(?:all\s+)?(?:of\s+)?(?:your|the|all)\s+(?:faqs?|frequently\s+asked\s+questions)\b",
            r"\b(?:all|every)\s+(?:your\s+)?faqs?\b",
            r"\bcommon\s+questions\b",
            r"\bfaq\s+list\b",
        ]
    ),
}


def detect_listing_intent(query: str, item_type: str) -> bool:
    """Return ``True`` when ``query`` asks to list every item of ``item_type``."""

    patterns = LISTING_PATTERNS.get(item_type, ())
    return any(pattern.search(query) for pattern in patterns)


def listing_types(query: str) -> list[str]:
    """Return the knowledge types the query asks to list, in canonical order."""

    return [kind for kind in KNOWLEDGE_TYPES if detect_listing_intent(query, kind)]


__all__ = ["KNOWLEDGE_TYPES", "LISTING_PATTERNS", "detect_listing_intent", "listing_types"]
