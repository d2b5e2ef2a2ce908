"""Deterministic reply templates for the chat widget.

Escalation, case-status and fallback replies never go through the text
generator: they carry action links the widget turns into buttons, and a
template guarantees the link is always present.

Links use the ``escalate://`` scheme understood by the widget:

- ``escalate://new`` opens the live-chat contact form.
- ``escalate://continue`` reconnects a returning customer to their case.
- ``escalate://form`` opens the offline ticket form (live chat disabled).
"""

from __future__ import annotations

from typing import Sequence

from ..escalation.intents import Intent
from ..escalation.scoring import ConversationTurn
from ..knowledge.ranker import KnowledgeItem


def escalation_link(live_chat_enabled: bool, kind: str = "new") -> str:
    """Return the markdown action link for a new or continued case."""

    if live_chat_enabled:
        if kind == "continue":
            return "[click here to continue your case](escalate://continue)"
        return "[click here to speak with a representative](escalate://new)"
    if kind == "continue":
        return "[click here to submit an update to your case](escalate://form)"
    return "[click here to submit your concern](escalate://form)"


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


# Escalation path ----------------------------------------------------------------

def fresh_escalation_reply(business_name: str, live_chat_enabled: bool) -> str:
    link = escalation_link(live_chat_enabled, "new")
    if live_chat_enabled:
        return (
            f"I understand you'd like to speak with someone from {business_name}. "
            f"Please have your name, email, and contact number ready and {link}. "
            "You'll be connected with an agent shortly."
        )
    return (
        f"I understand you'd like to speak with someone from {business_name}. "
        "Our live chat is currently unavailable, but our team can follow up with you. "
        f"Please share your name, email, and contact number and {link}. "
        "The team will respond soon."
    )


def continue_case_reply(case_number: str, status: str, live_chat_enabled: bool) -> str:
    link = escalation_link(live_chat_enabled, "continue")
    if live_chat_enabled:
        return (
            f"Welcome back! I found your case #{case_number} (status: {status}). "
            f"{_capitalize(link)} and enter your case number to pick up where you left off."
        )
    return (
        f"Welcome back! I found your case #{case_number} (status: {status}). "
        f"{_capitalize(link)} and include your case number so the team sees your update."
    )


def case_not_found_reply(case_number: str, live_chat_enabled: bool) -> str:
    link = escalation_link(live_chat_enabled, "new")
    return (
        f"I couldn't find case #{case_number} for this business. "
        f"Please double-check the number, or {link} to start a new case."
    )


# Case follow-up path ------------------------------------------------------------

CASE_STATUS_EXPLANATIONS = {
    "escalated": (
        "is open and waiting for our support team. "
        "A representative will reach out to you as soon as possible."
    ),
    "pending": (
        "is being worked on and is pending further action from our team. "
        "We'll update you as soon as there is progress."
    ),
    "resolved": (
        "has been resolved. If the issue isn't fixed for you, just let us know "
        "and we'll be happy to help further."
    ),
}


def case_status_reply(case_number: str, status: str) -> str:
    explanation = CASE_STATUS_EXPLANATIONS.get(
        status, f"currently has the status \"{status}\"."
    )
    return f"Your case #{case_number} {explanation}"


def case_status_not_found_reply(case_number: str) -> str:
    return (
        f"I couldn't find a case with the number #{case_number}. "
        "Could you double-check the number and send it again?"
    )


def ask_for_case_number_reply() -> str:
    return (
        "I'd be glad to check on your case. Could you share your case number? "
        "It's the 6-digit number from your confirmation, for example 482910."
    )


# Fallbacks when no knowledge matched ---------------------------------------------

def _pricing_available(business_name: str) -> str:
    return (
        "I don't have specific pricing information for that. "
        f"Could you tell me which {business_name} product or service you're asking about?"
    )


def _general_info_available(business_name: str) -> str:
    return (
        "I don't have those details right now. "
        "Could you tell me a bit more about what you're looking for, or ask about something else?"
    )


def _case_followup_fallback(business_name: str) -> str:
    return ask_for_case_number_reply()


def _general_fallback(business_name: str) -> str:
    return (
        f"Thanks for reaching out to {business_name}! I need a bit more detail to help you. "
        "What can I help you with today?"
    )


FALLBACK_STRATEGIES = {
    "pricing_available": _pricing_available,
    "general_info_available": _general_info_available,
    "case_followup_fallback": _case_followup_fallback,
    "general_fallback": _general_fallback,
}


def fallback_strategy(intent: Intent) -> str:
    if intent is Intent.PRICING_INQUIRY:
        return "pricing_available"
    if intent is Intent.CASE_FOLLOWUP:
        return "case_followup_fallback"
    if intent in (Intent.INFORMATION_REQUEST, Intent.COMPLAINT):
        return "general_info_available"
    return "general_fallback"


def fallback_reply(intent: Intent, business_name: str) -> str:
    """Natural "I don't have that" reply that still ends with a next step."""

    return FALLBACK_STRATEGIES[fallback_strategy(intent)](business_name)


# Escalation offers appended to answers ----------------------------------------

def offer_suffix(live_chat_enabled: bool) -> str:
    return f"\n\nIf you'd like to discuss this further, {escalation_link(live_chat_enabled)}."


def pricing_offer_suffix(live_chat_enabled: bool) -> str:
    return f"\n\nFor specific details, {escalation_link(live_chat_enabled)}."


def complex_topic_suffix(live_chat_enabled: bool) -> str:
    return f"\n\n{_capitalize(escalation_link(live_chat_enabled))} to help resolve this."


# Failures -----------------------------------------------------------------------

def unavailable_message(live_chat_enabled: bool) -> str:
    link = escalation_link(live_chat_enabled)
    if live_chat_enabled:
        return f"Service temporarily unavailable. Please try again later or {link}."
    return (
        "Service temporarily unavailable. Our live chat is currently not available, "
        f"but you can {link} and our team will assist you."
    )


def internal_error_message(live_chat_enabled: bool) -> str:
    link = escalation_link(live_chat_enabled)
    if live_chat_enabled:
        return f"I'm having trouble processing your request right now. Please try again or {link}."
    return (
        "I'm having trouble processing your request right now. Our live chat is currently "
        f"not available, but you can {link} and our team will assist you."
    )


# Knowledge rendering ------------------------------------------------------------

def _money(amount: float | None, currency: str | None) -> str:
    return f"{currency or 'USD'} {amount:g}" if amount is not None else ""


def describe_item(item: KnowledgeItem) -> str:
    """One line per item, with the details that matter for its type."""

    data = item.data
    if item.kind == "faq":
        category = f" (FAQ - {data['category']})" if data.get("category") else " (FAQ)"
        return f"**{data.get('question') or 'FAQ'}**{category}: {data.get('answer') or ''}"
    if item.kind == "product":
        category = f" (Product - {data['category']})" if data.get("category") else " (Product)"
        parts = [data.get("description") or "Available product"]
        price = data.get("price") or {}
        if price.get("amount"):
            parts.append(f"Price: {_money(price['amount'], price.get('currency'))}")
        if data.get("sku"):
            parts.append(f"SKU: {data['sku']}")
        quantity = data.get("quantity")
        if quantity is not None:
            parts.append(f"In Stock ({quantity})" if quantity > 0 else "Out of Stock")
        return f"**{data.get('name') or 'Product'}**{category}: {' | '.join(parts)}"
    if item.kind == "service":
        category = f" (Service - {data['category']})" if data.get("category") else " (Service)"
        parts = [data.get("description") or ""]
        pricing = data.get("pricing") or {}
        if pricing.get("type") == "quote":
            parts.append("Pricing: Contact for Quote")
        elif pricing.get("amount"):
            label = {"hourly": "/hour", "package": " (package)"}.get(pricing.get("type") or "fixed", "")
            parts.append(f"Price: {_money(pricing['amount'], pricing.get('currency'))}{label}")
        if data.get("duration"):
            parts.append(f"Duration: {data['duration']}")
        return f"**{data.get('name') or 'Service'}**{category}: {' | '.join(p for p in parts if p)}"
    category = f" (Policy - {data['type']})" if data.get("type") else " (Policy)"
    return f"**{data.get('title') or 'Policy'}**{category}: {data.get('content') or ''}"


def knowledge_summary(business_name: str, items: Sequence[KnowledgeItem], intent: Intent) -> str:
    """Offline answer used when no text generator is configured or it timed out."""

    if intent is Intent.GREETING:
        return f"Hello! Welcome to {business_name}. How can I help you today?"
    lines = [f"Here's what I found at {business_name}:"]
    lines.extend(f"- {describe_item(item)}" for item in items)
    lines.append("Is there anything else you'd like to know?")
    return "\n".join(lines)


# Confidence ---------------------------------------------------------------------

def response_confidence(
    query: str,
    items: Sequence[KnowledgeItem],
    history: Sequence[ConversationTurn] = (),
) -> int:
    """0-100 heuristic from data relevance, query length, history and completeness."""

    confidence = 0.0
    words = query.lower().split()
    if items and words:
        relevance = 0.0
        for item in items:
            text = f"{item.title} {item.body}".lower()
            matching = [word for word in words if len(word) > 2 and word in text]
            relevance += len(matching) / len(words) * 10
        confidence += min(relevance, 40)

    if len(words) <= 5:
        confidence += 20
    elif len(words) <= 10:
        confidence += 15
    else:
        confidence += 10

    if history:
        confidence += min(len(history) * 5, 25)

    if items:
        complete = any(len(item.body) > 50 for item in items)
        confidence += 15 if complete else 8

    return int(round(min(confidence, 100)))


__all__ = [
    "FALLBACK_STRATEGIES",
    "ask_for_case_number_reply",
    "case_not_found_reply",
    "case_status_not_found_reply",
    "case_status_reply",
    "complex_topic_suffix",
    "continue_case_reply",
    "describe_item",
    "escalation_link",
    "fallback_reply",
    "fallback_strategy",
    "fresh_escalation_reply",
    "internal_error_message",
    "knowledge_summary",
    "offer_suffix",
    "pricing_offer_suffix",
    "response_confidence",
    "unavailable_message",
]
