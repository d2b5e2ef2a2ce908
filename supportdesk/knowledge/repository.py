"""Loading a business's active knowledge items for the ranker."""

from __future__ import annotations

import uuid
from typing import Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import FAQ, Policy, Product, Service
from .ranker import KnowledgeItem


def _amount(value) -> float | None:
    return float(value) if value is not None else None


def faq_item(row: FAQ) -> KnowledgeItem:
    return KnowledgeItem(
        kind="faq",
        id=row.id,
        fields={"question": row.question, "answer": row.answer, "category": row.category or ""},
        created_at=row.created_at,
        data={"question": row.question, "answer": row.answer, "category": row.category},
    )


def product_item(row: Product) -> KnowledgeItem:
    return KnowledgeItem(
        kind="product",
        id=row.id,
        fields={
            "name": row.name,
            "description": row.description or "",
            "category": row.category or "",
            "sku": row.sku or "",
        },
        created_at=row.created_at,
        data={
            "name": row.name,
            "description": row.description,
            "category": row.category,
            "price": {"amount": _amount(row.price_amount), "currency": row.price_currency},
            "sku": row.sku,
            "quantity": row.quantity,
        },
    )


def service_item(row: Service) -> KnowledgeItem:
    return KnowledgeItem(
        kind="service",
        id=row.id,
        fields={
            "name": row.name,
            "description": row.description or "",
            "category": row.category or "",
        },
        created_at=row.created_at,
        data={
            "name": row.name,
            "description": row.description,
            "category": row.category,
            "pricing": {
                "type": row.pricing_type,
                "amount": _amount(row.pricing_amount),
                "currency": row.pricing_currency,
            },
            "duration": row.duration,
        },
    )


def policy_item(row: Policy) -> KnowledgeItem:
    return KnowledgeItem(
        kind="policy",
        id=row.id,
        fields={"title": row.title, "content": row.content, "type": row.type or ""},
        created_at=row.created_at,
        data={"title": row.title, "content": row.content, "type": row.type},
    )


class KnowledgeRepository(Protocol):
    """Abstraction over where knowledge items come from."""

    def load_active(self, business_id: uuid.UUID) -> list[KnowledgeItem]: ...


class SqlAlchemyKnowledgeRepository:
    """Reads active FAQs, products, services and policies for one business."""

    _SOURCES = (
        (FAQ, faq_item),
        (Product, product_item),
        (Service, service_item),
        (Policy, policy_item),
    )

    def __init__(self, session: Session) -> None:
        self._session = session

    def load_active(self, business_id: uuid.UUID) -> list[KnowledgeItem]:
        items: list[KnowledgeItem] = []
        for model, convert in self._SOURCES:
            stmt = (
                select(model)
                .where(model.business_id == business_id, model.is_active.is_(True))
                .order_by(model.created_at.desc())
            )
            items.extend(convert(row) for row in self._session.scalars(stmt))
        return items


class InMemoryKnowledgeRepository:
    """Dictionary-backed repository used by tests."""

    def __init__(self, items: dict[uuid.UUID, Sequence[KnowledgeItem]] | None = None) -> None:
        self._items = {key: list(value) for key, value in (items or {}).items()}

    def load_active(self, business_id: uuid.UUID) -> list[KnowledgeItem]:
        return list(self._items.get(business_id, []))


__all__ = [
    "InMemoryKnowledgeRepository",
    "KnowledgeRepository",
    "SqlAlchemyKnowledgeRepository",
    "faq_item",
    "policy_item",
    "product_item",
    "service_item",
]
