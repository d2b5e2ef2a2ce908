"""Grounded answer generation for knowledge replies.

When ``OPENAI_API_KEY`` is configured the answer is produced by the OpenAI
chat completions API, prompted with the ranked knowledge items only; otherwise
a deterministic summary of the items is returned so the widget keeps working
in development and CI without network access.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence

import openai
from langdetect import LangDetectException, detect
from openai import AsyncOpenAI

from ..escalation.intents import Intent
from ..escalation.scoring import ConversationTurn
from ..knowledge.ranker import KnowledgeItem
from ..settings import Settings, get_settings
from .responses import describe_item, knowledge_summary

logger = logging.getLogger(__name__)


class GenerationUnavailableError(RuntimeError):
    """Raised when the upstream model is out of quota or unreachable."""


class TextGenerator(Protocol):
    async def generate(self, messages: list[dict[str, str]]) -> str: ...


class OpenAIGenerator:
    """Chat-completions client with quota errors mapped to unavailability."""

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def generate(self, messages: list[dict[str, str]]) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self._settings.openai_model,
                messages=messages,
                temperature=self._settings.generation_temperature,
                max_tokens=self._settings.generation_max_tokens,
            )
        except openai.RateLimitError as exc:
            raise GenerationUnavailableError("Model quota exhausted") from exc
        except openai.APIConnectionError as exc:
            raise GenerationUnavailableError("Model endpoint unreachable") from exc
        except openai.APIStatusError as exc:
            if "quota" in str(exc).lower():
                raise GenerationUnavailableError("Model quota exhausted") from exc
            raise
        content = completion.choices[0].message.content or ""
        return content.strip()


def build_generator(settings: Settings | None = None) -> TextGenerator | None:
    settings = settings or get_settings()
    if not settings.openai_api_key:
        return None
    return OpenAIGenerator(settings)


def language_instruction(query: str, configured: str | None = None) -> str:
    lang = configured
    if not lang:
        try:
            lang = detect(query) if query.strip() else None
        except LangDetectException:
            lang = None
    return f"Reply in {lang}." if lang else "Reply in the same language as the question."


def build_system_prompt(
    business_name: str,
    items: Sequence[KnowledgeItem],
    *,
    listing: bool = False,
    lang_instruction: str = "",
) -> str:
    knowledge = "\n".join(f"- {describe_item(item)}" for item in items)
    parts = [
        f"You are a friendly customer support assistant for {business_name}.",
        "Answer using ONLY the business information below. If the answer is not "
        "in it, say you don't have that detail and ask what else you can help with.",
        "Do not invent prices, policies or availability. Keep answers short and "
        "conversational, and use markdown lists when presenting several items.",
    ]
    if listing:
        parts.append("The customer asked for a list: present every item below.")
    parts.append(f"Business information:\n{knowledge}")
    if lang_instruction:
        parts.append(lang_instruction)
    return "\n\n".join(parts)


def build_messages(
    query: str,
    system_prompt: str,
    history: Sequence[ConversationTurn] = (),
) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for turn in history:
        role = "user" if turn.role == "customer" else "assistant"
        messages.append({"role": role, "content": turn.text})
    messages.append({"role": "user", "content": query})
    return messages


class KnowledgeAnswerer:
    """Produce an answer grounded in ranked knowledge items.

    Returns ``(answer, used_llm)``. A generator timeout degrades to the
    deterministic summary; :class:`GenerationUnavailableError` propagates so the
    caller can report the service as temporarily unavailable.
    """

    def __init__(self, generator: TextGenerator | None = None, settings: Settings | None = None) -> None:
        self._generator = generator
        self._settings = settings or get_settings()

    async def answer(
        self,
        query: str,
        *,
        business_name: str,
        items: Sequence[KnowledgeItem],
        intent: Intent,
        history: Sequence[ConversationTurn] = (),
    ) -> tuple[str, bool]:
        if self._generator is None:
            return knowledge_summary(business_name, items, intent), False

        system_prompt = build_system_prompt(
            business_name,
            items,
            listing=any(item.is_listing_query for item in items),
            lang_instruction=language_instruction(query, self._settings.openai_lang),
        )
        messages = build_messages(query, system_prompt, history)
        try:
            text = await asyncio.wait_for(
                self._generator.generate(messages),
                timeout=self._settings.generation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Answer generation exceeded %.1fs; using summary",
                self._settings.generation_timeout_seconds,
            )
            return knowledge_summary(business_name, items, intent), False
        if not text:
            logger.warning("Answer generation returned empty text; using summary")
            return knowledge_summary(business_name, items, intent), False
        return text, True


__all__ = [
    "GenerationUnavailableError",
    "KnowledgeAnswerer",
    "OpenAIGenerator",
    "TextGenerator",
    "build_generator",
    "build_messages",
    "build_system_prompt",
    "language_instruction",
]
