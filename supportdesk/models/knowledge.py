"""Knowledge-base models read by the relevance ranker.

FAQs, products, services and policies are authored through external CRUD
surfaces. Only rows flagged ``is_active`` are ever offered to the ranker.
"""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from . import Base, utcnow


class _KnowledgeColumns:
    """Columns shared by every knowledge variant."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class FAQ(_KnowledgeColumns, Base):
    """A question/answer pair."""

    __tablename__ = "faqs"
    __table_args__ = (Index("ix_faqs_business_active", "business_id", "is_active"),)

    question: Mapped[str] = mapped_column(Text(), nullable=False)
    answer: Mapped[str] = mapped_column(Text(), nullable=False)
    category: Mapped[str | None] = mapped_column(String(length=128))


class Product(_KnowledgeColumns, Base):
    """A sellable product with optional price and stock information."""

    __tablename__ = "products"
    __table_args__ = (Index("ix_products_business_active", "business_id", "is_active"),)

    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    category: Mapped[str | None] = mapped_column(String(length=128))
    price_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    price_currency: Mapped[str | None] = mapped_column(String(length=8))
    sku: Mapped[str | None] = mapped_column(String(length=64))
    quantity: Mapped[int | None] = mapped_column()


class Service(_KnowledgeColumns, Base):
    """A bookable service.

    ``pricing_type`` is one of ``fixed``, ``hourly``, ``package`` or ``quote``.
    """

    __tablename__ = "services"
    __table_args__ = (Index("ix_services_business_active", "business_id", "is_active"),)

    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    category: Mapped[str | None] = mapped_column(String(length=128))
    pricing_type: Mapped[str | None] = mapped_column(String(length=16))
    pricing_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    pricing_currency: Mapped[str | None] = mapped_column(String(length=8))
    duration: Mapped[str | None] = mapped_column(String(length=64))


class Policy(_KnowledgeColumns, Base):
    """A business policy such as returns, privacy or shipping."""

    __tablename__ = "policies"
    __table_args__ = (Index("ix_policies_business_active", "business_id", "is_active"),)

    title: Mapped[str] = mapped_column(String(length=255), nullable=False)
    content: Mapped[str] = mapped_column(Text(), nullable=False)
    type: Mapped[str | None] = mapped_column(String(length=64))


__all__ = ["FAQ", "Policy", "Product", "Service"]
