from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

import sqlalchemy as sa
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldops.db.base import Base, UUIDMixin, GUID, JSONB, Money, UTCDateTime, utcnow
from fieldops.enums import AdjustmentType, EstimateItemType, EstimateStatus, LaborRateType
from ._helpers import status_col, enum_col, ts_col


class Estimate(UUIDMixin, Base):
    __tablename__ = "estimates"
    __table_args__ = (
        UniqueConstraint("company_id", "estimate_no", name="uq_estimates_company_estimate_no"),
        {"comment": "Internal costed proposal for a service request, versioned per family."},
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    estimate_no: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    service_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    site_visit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(), ForeignKey("site_visits.id", ondelete="SET NULL")
    )

    title: Mapped[Optional[str]] = mapped_column(sa.String(255))
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[EstimateStatus] = status_col(EstimateStatus, EstimateStatus.DRAFT)

    # versioning: the root of a family has no parent; revisions point at the root
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)
    is_latest_version: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    parent_estimate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(), ForeignKey("estimates.id", ondelete="SET NULL"), index=True
    )

    # pricing parameters
    profit_margin_type: Mapped[Optional[AdjustmentType]] = enum_col(AdjustmentType)
    profit_margin_value: Mapped[Decimal] = Money()
    discount_type: Mapped[Optional[AdjustmentType]] = enum_col(AdjustmentType)
    discount_value: Mapped[Decimal] = Money()
    vat_rate: Mapped[Decimal] = mapped_column(sa.Numeric(5, 2), nullable=False, default=Decimal("10"))

    # cost breakdown
    material_cost: Mapped[Decimal] = Money()
    labor_cost: Mapped[Decimal] = Money()
    equipment_cost: Mapped[Decimal] = Money()
    other_cost: Mapped[Decimal] = Money()
    subtotal: Mapped[Decimal] = Money()
    profit_amount: Mapped[Decimal] = Money()
    discount_amount: Mapped[Decimal] = Money()
    total_before_vat: Mapped[Decimal] = Money()
    vat_amount: Mapped[Decimal] = Money()
    total: Mapped[Decimal] = Money()

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    submitted_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    submitted_at: Mapped[Optional[datetime]] = ts_col()
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    approved_at: Mapped[Optional[datetime]] = ts_col()
    approval_notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    rejected_at: Mapped[Optional[datetime]] = ts_col()
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    revision_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_at: Mapped[Optional[datetime]] = ts_col()
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)

    converted_to_quote_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    converted_at: Mapped[Optional[datetime]] = ts_col()

    items: Mapped[List["EstimateItem"]] = relationship(
        back_populates="estimate",
        cascade="all, delete-orphan",
        order_by="EstimateItem.sort_order",
        lazy="selectin",
    )
    labor_items: Mapped[List["EstimateLaborItem"]] = relationship(
        back_populates="estimate",
        cascade="all, delete-orphan",
        order_by="EstimateLaborItem.sort_order",
        lazy="selectin",
    )
    activities: Mapped[List["EstimateActivity"]] = relationship(
        back_populates="estimate",
        cascade="all, delete-orphan",
        order_by="EstimateActivity.created_at",
        lazy="selectin",
    )


class EstimateItem(UUIDMixin, Base):
    __tablename__ = "estimate_items"

    estimate_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("estimates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_type: Mapped[EstimateItemType] = enum_col(EstimateItemType, nullable=False, default=EstimateItemType.MATERIAL)
    inventory_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    description: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(sa.String(32))
    quantity: Mapped[Decimal] = mapped_column(sa.Numeric(12, 3), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(sa.Numeric(12, 4), nullable=False)
    markup_type: Mapped[Optional[AdjustmentType]] = enum_col(AdjustmentType)
    markup_value: Mapped[Decimal] = Money()
    markup_amount: Mapped[Decimal] = Money()
    total_cost: Mapped[Decimal] = Money()
    total_price: Mapped[Decimal] = Money()
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    sort_order: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    estimate: Mapped["Estimate"] = relationship(back_populates="items")


class EstimateLaborItem(UUIDMixin, Base):
    __tablename__ = "estimate_labor_items"

    estimate_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("estimates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    job_title: Mapped[Optional[str]] = mapped_column(sa.String(128))
    rate_type: Mapped[LaborRateType] = enum_col(LaborRateType, nullable=False, default=LaborRateType.HOURLY)
    quantity: Mapped[Decimal] = mapped_column(sa.Numeric(12, 3), nullable=False, default=Decimal("1"))
    hours: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False, default=Decimal("0"))
    hourly_rate: Mapped[Decimal] = Money()
    days: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False, default=Decimal("0"))
    daily_rate: Mapped[Decimal] = Money()
    markup_type: Mapped[Optional[AdjustmentType]] = enum_col(AdjustmentType)
    markup_value: Mapped[Decimal] = Money()
    markup_amount: Mapped[Decimal] = Money()
    total_cost: Mapped[Decimal] = Money()
    total_price: Mapped[Decimal] = Money()
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    sort_order: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    estimate: Mapped["Estimate"] = relationship(back_populates="labor_items")


class EstimateActivity(Base):
    """Append-only audit row; never updated after insert."""
    __tablename__ = "estimate_activities"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    estimate_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("estimates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    metadata_: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSONB)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    estimate: Mapped["Estimate"] = relationship(back_populates="activities")
