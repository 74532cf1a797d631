from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldops.db.base import Base, UUIDMixin, GUID, Money
from fieldops.enums import InvoiceStatus, PaymentMethod
from ._helpers import status_col, enum_col, ts_col


class Invoice(UUIDMixin, Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("company_id", "invoice_no", name="uq_invoices_company_invoice_no"),
        # one invoice per service request
        UniqueConstraint("service_request_id", name="uq_invoices_service_request_id"),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    invoice_no: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    service_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    status: Mapped[InvoiceStatus] = status_col(InvoiceStatus, InvoiceStatus.DRAFT)
    issue_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    due_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    subtotal: Mapped[Decimal] = Money()
    tax_rate: Mapped[Decimal] = mapped_column(sa.Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = Money()
    total: Mapped[Decimal] = Money()
    paid_amount: Mapped[Decimal] = Money()
    paid_at: Mapped[Optional[datetime]] = ts_col()
    sent_at: Mapped[Optional[datetime]] = ts_col()
    cancelled_at: Mapped[Optional[datetime]] = ts_col()
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    items: Mapped[List["InvoiceItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.sort_order",
        lazy="selectin",
    )
    payments: Mapped[List["Payment"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.created_at",
        lazy="selectin",
    )

    @property
    def balance(self) -> Decimal:
        return (self.total or Decimal("0")) - (self.paid_amount or Decimal("0"))


class InvoiceItem(UUIDMixin, Base):
    __tablename__ = "invoice_items"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(sa.Numeric(12, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(sa.Numeric(14, 4), nullable=False)
    total: Mapped[Decimal] = Money()
    sort_order: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    invoice: Mapped["Invoice"] = relationship(back_populates="items")


class Payment(UUIDMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("company_id", "payment_no", name="uq_payments_company_payment_no"),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    payment_no: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = Money()
    payment_method: Mapped[PaymentMethod] = enum_col(PaymentMethod, nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(sa.String(128))
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    received_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    invoice: Mapped["Invoice"] = relationship(back_populates="payments")
    receipt: Mapped[Optional["Receipt"]] = relationship(
        back_populates="payment", cascade="all, delete-orphan", uselist=False, lazy="selectin"
    )


class Receipt(UUIDMixin, Base):
    __tablename__ = "receipts"
    __table_args__ = (
        UniqueConstraint("company_id", "receipt_no", name="uq_receipts_company_receipt_no"),
        UniqueConstraint("payment_id", name="uq_receipts_payment_id"),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    receipt_no: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = Money()
    previously_paid: Mapped[Decimal] = Money()
    balance_after: Mapped[Decimal] = Money()
    issued_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    payment: Mapped["Payment"] = relationship(back_populates="receipt")
