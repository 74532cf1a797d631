from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from fieldops.enums import AdjustmentType, QuoteItemType, QuoteStatus
from .base import APIModel, InputModel, NonNegative, Positive, check_adjustment
from .estimates import ActivityOut


class QuoteItemIn(InputModel):
    item_type: QuoteItemType = QuoteItemType.MATERIAL
    description: str = Field(min_length=1, max_length=500)
    unit: Optional[str] = None
    quantity: Positive
    unit_price: NonNegative


class QuoteCreate(InputModel):
    service_request_id: uuid.UUID
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    valid_until: Optional[date] = None
    discount_type: Optional[AdjustmentType] = None
    discount_value: NonNegative = Decimal("0")
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    items: List[QuoteItemIn] = Field(min_length=1)

    @model_validator(mode="after")
    def _discount(self):
        check_adjustment(self.discount_type, self.discount_value, "Discount")
        return self


class CustomerResponseIn(InputModel):
    accepted: bool
    notes: Optional[str] = None


class QuoteItemOut(APIModel):
    id: uuid.UUID
    item_type: QuoteItemType
    description: str
    unit: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


class QuoteOut(APIModel):
    id: uuid.UUID
    company_id: uuid.UUID
    quote_no: str
    service_request_id: uuid.UUID
    estimate_id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    description: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    status: QuoteStatus
    valid_until: date
    discount_type: Optional[AdjustmentType] = None
    discount_value: Decimal
    tax_rate: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    customer_notes: Optional[str] = None
    converted_to_work_order_id: Optional[uuid.UUID] = None
    created_at: datetime
    items: List[QuoteItemOut] = []
    activities: List[ActivityOut] = []
