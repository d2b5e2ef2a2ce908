"""Knowledge retrieval: listing-intent detection and keyword relevance ranking."""

from .listing import detect_listing_intent
from .ranker import KnowledgeItem, rank

__all__ = ["KnowledgeItem", "detect_listing_intent", "rank"]
