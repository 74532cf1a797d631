from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from fieldops.enums import InvoiceStatus, PaymentMethod
from .base import APIModel, InputModel


class InvoiceGenerateIn(InputModel):
    service_request_id: uuid.UUID
    due_date: Optional[date] = None
    notes: Optional[str] = None


class PaymentIn(InputModel):
    # sign and balance checks happen in the engine so the message names the rule
    amount: Decimal = Field(max_digits=14, decimal_places=2)
    payment_method: PaymentMethod
    reference: Optional[str] = Field(default=None, max_length=128)
    notes: Optional[str] = None


class InvoiceItemOut(APIModel):
    id: uuid.UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


class ReceiptOut(APIModel):
    id: uuid.UUID
    receipt_no: str
    payment_id: uuid.UUID
    invoice_id: uuid.UUID
    amount: Decimal
    previously_paid: Decimal
    balance_after: Decimal
    created_at: datetime


class PaymentOut(APIModel):
    id: uuid.UUID
    payment_no: str
    amount: Decimal
    payment_method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    receipt: Optional[ReceiptOut] = None


class InvoiceOut(APIModel):
    id: uuid.UUID
    company_id: uuid.UUID
    invoice_no: str
    service_request_id: uuid.UUID
    customer_id: Optional[uuid.UUID] = None
    status: InvoiceStatus
    issue_date: date
    due_date: date
    notes: Optional[str] = None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    balance: Decimal
    paid_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[InvoiceItemOut] = []
    payments: List[PaymentOut] = []
