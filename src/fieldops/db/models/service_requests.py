from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fieldops.db.base import Base, UUIDMixin, GUID, Money
from fieldops.enums import Priority, ServiceRequestStatus
from ._helpers import status_col, enum_col, ts_col


class ServiceRequest(UUIDMixin, Base):
    __tablename__ = "service_requests"
    __table_args__ = (
        UniqueConstraint("company_id", "request_no", name="uq_service_requests_company_request_no"),
        {"comment": "Root work item; its status mirrors the position in the estimate to invoice pipeline."},
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    request_no: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    customer_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    complaint_type: Mapped[Optional[str]] = mapped_column(sa.String(64))
    priority: Mapped[Priority] = enum_col(Priority, nullable=False, default=Priority.MEDIUM)
    status: Mapped[ServiceRequestStatus] = status_col(ServiceRequestStatus, ServiceRequestStatus.NEW)
    # complaint type's default service charge, snapshotted when the request is logged
    service_charge: Mapped[Decimal] = Money()
    completed_at: Mapped[Optional[datetime]] = ts_col()


class SiteVisit(UUIDMixin, Base):
    __tablename__ = "site_visits"

    service_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scheduled_at: Mapped[Optional[datetime]] = ts_col()
    visited_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    findings: Mapped[Optional[str]] = mapped_column(sa.Text)
