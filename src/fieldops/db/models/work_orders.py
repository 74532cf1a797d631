from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

import sqlalchemy as sa
from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldops.db.base import Base, UUIDMixin, GUID, JSONB, Money, UTCDateTime, utcnow
from fieldops.enums import PhotoType, Priority, TeamRole, WorkOrderItemType, WorkOrderStatus
from ._helpers import status_col, enum_col, ts_col


class WorkOrder(UUIDMixin, Base):
    __tablename__ = "work_orders"
    __table_args__ = (
        UniqueConstraint("company_id", "work_order_no", name="uq_work_orders_company_work_order_no"),
        {"comment": "Execution record for one scheduled field job."},
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    work_order_no: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    service_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quote_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("quotes.id", ondelete="SET NULL"))
    estimate_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("estimates.id", ondelete="SET NULL"))

    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    instructions: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[WorkOrderStatus] = status_col(WorkOrderStatus, WorkOrderStatus.PENDING)
    priority: Mapped[Priority] = enum_col(Priority, nullable=False, default=Priority.MEDIUM)

    scheduled_date: Mapped[Optional[date]] = mapped_column(sa.Date, index=True)
    scheduled_time: Mapped[Optional[str]] = mapped_column(sa.String(8))
    estimated_duration: Mapped[Optional[int]] = mapped_column(sa.Integer)  # minutes
    actual_duration: Mapped[Optional[int]] = mapped_column(sa.Integer)  # minutes
    started_at: Mapped[Optional[datetime]] = ts_col()
    completed_at: Mapped[Optional[datetime]] = ts_col()

    material_cost: Mapped[Decimal] = Money()
    labor_cost: Mapped[Decimal] = Money()
    additional_cost: Mapped[Decimal] = Money()
    total_cost: Mapped[Decimal] = Money()

    work_performed: Mapped[Optional[str]] = mapped_column(sa.Text)
    technician_notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    customer_signature: Mapped[Optional[str]] = mapped_column(sa.Text)
    technician_signature: Mapped[Optional[str]] = mapped_column(sa.Text)
    signed_at: Mapped[Optional[datetime]] = ts_col()
    customer_feedback: Mapped[Optional[str]] = mapped_column(sa.Text)
    customer_rating: Mapped[Optional[int]] = mapped_column(sa.SmallInteger)
    hold_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    team: Mapped[List["WorkOrderTeamMember"]] = relationship(
        back_populates="work_order", cascade="all, delete-orphan", lazy="selectin"
    )
    items: Mapped[List["WorkOrderItem"]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderItem.created_at",
        lazy="selectin",
    )
    labor: Mapped[List["WorkOrderLabor"]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderLabor.clock_in_at",
        lazy="selectin",
    )
    checklists: Mapped[List["WorkOrderChecklist"]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderChecklist.sort_order",
        lazy="selectin",
    )
    photos: Mapped[List["WorkOrderPhoto"]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderPhoto.created_at",
        lazy="selectin",
    )
    activities: Mapped[List["WorkOrderActivity"]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderActivity.created_at",
        lazy="selectin",
    )


class WorkOrderTeamMember(UUIDMixin, Base):
    __tablename__ = "work_order_team"
    __table_args__ = (
        UniqueConstraint("work_order_id", "employee_id", name="uq_work_order_team_member"),
    )

    work_order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    role: Mapped[TeamRole] = enum_col(TeamRole, nullable=False, default=TeamRole.TECHNICIAN)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="team")


class WorkOrderItem(UUIDMixin, Base):
    __tablename__ = "work_order_items"

    work_order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_type: Mapped[WorkOrderItemType] = enum_col(
        WorkOrderItemType, nullable=False, default=WorkOrderItemType.MATERIAL
    )
    inventory_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    description: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(sa.String(32))
    quantity: Mapped[Decimal] = mapped_column(sa.Numeric(12, 3), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(sa.Numeric(14, 4), nullable=False)
    total_cost: Mapped[Decimal] = Money()
    is_from_estimate: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    is_additional: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    added_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    work_order: Mapped["WorkOrder"] = relationship(back_populates="items")


class WorkOrderLabor(UUIDMixin, Base):
    """One time entry per employee visit; open while clock_out_at is NULL."""
    __tablename__ = "work_order_labor"
    __table_args__ = (
        # at most one open entry per employee per work order
        Index(
            "uq_work_order_labor_open_entry",
            "work_order_id",
            "employee_id",
            unique=True,
            postgresql_where=sa.text("clock_out_at IS NULL"),
            sqlite_where=sa.text("clock_out_at IS NULL"),
        ),
    )

    work_order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    travel_start_at: Mapped[Optional[datetime]] = ts_col()
    arrived_at: Mapped[Optional[datetime]] = ts_col()
    clock_in_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    clock_out_at: Mapped[Optional[datetime]] = ts_col()
    break_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    total_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    hourly_rate: Mapped[Optional[Decimal]] = Money(nullable=True, default=None)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="labor")


class WorkOrderChecklist(UUIDMixin, Base):
    __tablename__ = "work_order_checklists"

    work_order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_required: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    is_completed: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    completed_at: Mapped[Optional[datetime]] = ts_col()
    completed_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    photo_url: Mapped[Optional[str]] = mapped_column(sa.String(1024))
    sort_order: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="checklists")


class WorkOrderPhoto(UUIDMixin, Base):
    __tablename__ = "work_order_photos"

    work_order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    photo_type: Mapped[PhotoType] = enum_col(PhotoType, nullable=False, default=PhotoType.OTHER)
    url: Mapped[str] = mapped_column(sa.String(1024), nullable=False)
    caption: Mapped[Optional[str]] = mapped_column(sa.String(500))
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    work_order: Mapped["WorkOrder"] = relationship(back_populates="photos")


class WorkOrderActivity(Base):
    """Append-only audit trail; one row per mutating operation."""
    __tablename__ = "work_order_activities"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    work_order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    metadata_: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSONB)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="activities")
