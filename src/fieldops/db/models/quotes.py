from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

import sqlalchemy as sa
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldops.db.base import Base, UUIDMixin, GUID, JSONB, Money, UTCDateTime, utcnow
from fieldops.enums import AdjustmentType, QuoteItemType, QuoteStatus
from ._helpers import status_col, enum_col, ts_col


class Quote(UUIDMixin, Base):
    __tablename__ = "quotes"
    __table_args__ = (
        UniqueConstraint("company_id", "quote_no", name="uq_quotes_company_quote_no"),
        {"comment": "Customer-facing costed proposal, direct or converted from an approved estimate."},
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    quote_no: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    service_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    estimate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(), ForeignKey("estimates.id", ondelete="SET NULL"), index=True
    )

    title: Mapped[Optional[str]] = mapped_column(sa.String(255))
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    terms_and_conditions: Mapped[Optional[str]] = mapped_column(sa.Text)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[QuoteStatus] = status_col(QuoteStatus, QuoteStatus.DRAFT)
    valid_until: Mapped[date] = mapped_column(sa.Date, nullable=False)

    discount_type: Mapped[Optional[AdjustmentType]] = enum_col(AdjustmentType)
    discount_value: Mapped[Decimal] = Money()
    tax_rate: Mapped[Decimal] = mapped_column(sa.Numeric(5, 2), nullable=False, default=Decimal("0"))
    subtotal: Mapped[Decimal] = Money()
    discount_amount: Mapped[Decimal] = Money()
    tax_amount: Mapped[Decimal] = Money()
    total: Mapped[Decimal] = Money()

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    sent_at: Mapped[Optional[datetime]] = ts_col()
    viewed_at: Mapped[Optional[datetime]] = ts_col()
    responded_at: Mapped[Optional[datetime]] = ts_col()
    customer_notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    converted_to_work_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    items: Mapped[List["QuoteItem"]] = relationship(
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.sort_order",
        lazy="selectin",
    )
    activities: Mapped[List["QuoteActivity"]] = relationship(
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteActivity.created_at",
        lazy="selectin",
    )


class QuoteItem(UUIDMixin, Base):
    __tablename__ = "quote_items"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_type: Mapped[QuoteItemType] = enum_col(QuoteItemType, nullable=False, default=QuoteItemType.MATERIAL)
    description: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(sa.String(32))
    quantity: Mapped[Decimal] = mapped_column(sa.Numeric(12, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(sa.Numeric(14, 4), nullable=False)
    total: Mapped[Decimal] = Money()
    sort_order: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    quote: Mapped["Quote"] = relationship(back_populates="items")


class QuoteActivity(Base):
    __tablename__ = "quote_activities"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    metadata_: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSONB)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    quote: Mapped["Quote"] = relationship(back_populates="activities")
