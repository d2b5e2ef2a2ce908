"""Keyword relevance ranking over a business's knowledge items.

The ranker is a pure function over items that were already loaded for one
business and filtered to ``is_active``. It never touches the database, so the
knowledge repository decides what is eligible and the ranker only orders it.
"""

from __future__ import annotations

import datetime as dt
import re
import string
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Sequence

from .listing import KNOWLEDGE_TYPES, listing_types

MAX_RESULTS = 8
LISTING_PER_TYPE = 5
LISTING_MAX_RESULTS = 20
FALLBACK_PER_TYPE = 5
MIN_SCORE = 0.1

STOP_WORDS = frozenset(
    {
        "a", "about", "all", "also", "am", "an", "and", "any", "are", "as",
        "at", "be", "been", "but", "by", "can", "could", "did", "do", "does",
        "for", "from", "get", "had", "has", "have", "he", "her", "here", "his",
        "how", "i", "if", "in", "is", "it", "its", "just", "me", "my", "need",
        "no", "not", "of", "on", "or", "our", "please", "she", "should", "so",
        "some", "tell", "than", "that", "the", "their", "them", "then", "there",
        "these", "they", "this", "to", "us", "want", "was", "we", "were", "what",
        "when", "where", "which", "who", "why", "will", "with", "would", "you",
        "your",
    }
)

# (field name, weight) per knowledge type.
FIELD_WEIGHTS: dict[str, tuple[tuple[str, int], ...]] = {
    "faq": (("question", 3), ("answer", 2), ("category", 1)),
    "product": (("name", 3), ("description", 2), ("category", 1), ("sku", 1)),
    "service": (("name", 3), ("description", 2), ("category", 1)),
    "policy": (("title", 3), ("content", 1), ("type", 1)),
}

_PUNCTUATION = re.compile(f"[{re.escape(string.punctuation)}]")
_EPOCH = dt.datetime.min.replace(tzinfo=dt.timezone.utc)


@dataclass
class KnowledgeItem:
    """One FAQ, product, service or policy as seen by the ranker.

    ``fields`` carries the searchable text fields for the item type; ``data``
    is the full projection used to render prompts and API responses.
    """

    kind: str
    id: Any
    fields: dict[str, str]
    created_at: dt.datetime | None = None
    data: dict[str, Any] = field(default_factory=dict)
    relevance_score: float = MIN_SCORE
    is_listing_query: bool = False

    @property
    def title(self) -> str:
        for key in ("question", "name", "title"):
            if self.fields.get(key):
                return self.fields[key]
        return ""

    @property
    def body(self) -> str:
        for key in ("answer", "description", "content"):
            if self.fields.get(key):
                return self.fields[key]
        return ""


def tokenize(query: str) -> list[str]:
    """Lower-case, strip punctuation and stop-words, keep tokens longer than 2."""

    cleaned = _PUNCTUATION.sub(" ", query.lower())
    return [tok for tok in cleaned.split() if len(tok) > 2 and tok not in STOP_WORDS]


def _is_whole_word(text: str, keyword: str) -> bool:
    return re.search(rf"(?:^|\s){re.escape(keyword)}(?:\s|$)", text) is not None


def score_item(item: KnowledgeItem, keywords: Sequence[str]) -> float:
    """Sum the weighted keyword matches across the item's searchable fields."""

    total = 0.0
    for field_name, weight in FIELD_WEIGHTS.get(item.kind, ()):
        value = item.fields.get(field_name)
        if not value:
            continue
        text = _PUNCTUATION.sub(" ", value.lower())
        for keyword in keywords:
            if keyword not in text:
                continue
            total += weight * 2 if _is_whole_word(text, keyword) else weight
    return total


def _recency_key(item: KnowledgeItem) -> dt.datetime:
    created = item.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=dt.timezone.utc)
    return created


def _most_recent(items: Iterable[KnowledgeItem], kind: str, limit: int) -> list[KnowledgeItem]:
    of_kind = [item for item in items if item.kind == kind]
    of_kind.sort(key=_recency_key, reverse=True)
    return of_kind[:limit]


def rank(query: str, items: Sequence[KnowledgeItem]) -> list[KnowledgeItem]:
    """Return ``items`` relevant to ``query``, best first.

    Listing questions bypass keyword scoring and return the most recent items
    of each requested type. Queries with no meaningful tokens fall back to the
    most recent items of every type. Every returned item scores at least
    :data:`MIN_SCORE`.
    """

    if not items:
        return []

    requested = listing_types(query)
    if requested:
        listed: list[KnowledgeItem] = []
        for kind in requested:
            listed.extend(
                replace(item, relevance_score=MIN_SCORE, is_listing_query=True)
                for item in _most_recent(items, kind, LISTING_PER_TYPE)
            )
        return listed[:LISTING_MAX_RESULTS]

    keywords = tokenize(query)
    if not keywords:
        recent: list[KnowledgeItem] = []
        for kind in KNOWLEDGE_TYPES:
            recent.extend(
                replace(item, relevance_score=MIN_SCORE)
                for item in _most_recent(items, kind, FALLBACK_PER_TYPE)
            )
        return recent[:MAX_RESULTS]

    scored: list[KnowledgeItem] = []
    for item in items:
        score = score_item(item, keywords)
        if score <= 0:
            continue
        scored.append(replace(item, relevance_score=max(score, MIN_SCORE)))
    scored.sort(key=lambda item: item.relevance_score, reverse=True)
    return scored[:MAX_RESULTS]


__all__ = [
    "FIELD_WEIGHTS",
    "KnowledgeItem",
    "MAX_RESULTS",
    "MIN_SCORE",
    "STOP_WORDS",
    "rank",
    "score_item",
    "tokenize",
]
