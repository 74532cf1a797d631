from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import Field, model_validator

from fieldops.enums import AdjustmentType, EstimateItemType, EstimateStatus, LaborRateType
from .base import APIModel, InputModel, NonNegative, Positive, Reason, check_adjustment


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class EstimateItemIn(InputModel):
    item_type: EstimateItemType = EstimateItemType.MATERIAL
    inventory_item_id: Optional[uuid.UUID] = None
    description: str = Field(min_length=1, max_length=500)
    unit: Optional[str] = None
    quantity: Positive
    unit_cost: NonNegative
    markup_type: Optional[AdjustmentType] = None
    markup_value: NonNegative = Decimal("0")
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _markup(self):
        check_adjustment(self.markup_type, self.markup_value, "Markup")
        return self


class EstimateLaborItemIn(InputModel):
    description: str = Field(min_length=1, max_length=500)
    job_title: Optional[str] = None
    rate_type: LaborRateType = LaborRateType.HOURLY
    quantity: Positive = Decimal("1")
    hours: NonNegative = Decimal("0")
    hourly_rate: NonNegative = Decimal("0")
    days: NonNegative = Decimal("0")
    daily_rate: NonNegative = Decimal("0")
    markup_type: Optional[AdjustmentType] = None
    markup_value: NonNegative = Decimal("0")
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _markup(self):
        check_adjustment(self.markup_type, self.markup_value, "Markup")
        return self


class PricingParams(InputModel):
    profit_margin_type: Optional[AdjustmentType] = None
    profit_margin_value: NonNegative = Decimal("0")
    discount_type: Optional[AdjustmentType] = None
    discount_value: NonNegative = Decimal("0")
    # None means "use the configured default"
    vat_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def _adjustments(self):
        check_adjustment(self.discount_type, self.discount_value, "Discount")
        return self


class EstimateCreate(PricingParams):
    service_request_id: uuid.UUID
    site_visit_id: Optional[uuid.UUID] = None
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    notes: Optional[str] = None
    items: List[EstimateItemIn] = Field(default_factory=list)
    labor_items: List[EstimateLaborItemIn] = Field(default_factory=list)


class EstimatePatch(InputModel):
    """
    Optional fields for ``update``. Only fields present in the request are
    applied (see ``apply_estimate_patch``); ``items``/``labor_items`` replace
    the whole collection when given.
    """
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    notes: Optional[str] = None
    profit_margin_type: Optional[AdjustmentType] = None
    profit_margin_value: Optional[NonNegative] = None
    discount_type: Optional[AdjustmentType] = None
    discount_value: Optional[NonNegative] = None
    vat_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    items: Optional[List[EstimateItemIn]] = None
    labor_items: Optional[List[EstimateLaborItemIn]] = None

    @model_validator(mode="after")
    def _adjustments(self):
        check_adjustment(self.discount_type, self.discount_value, "Discount")
        return self


class RevisionRequestIn(InputModel):
    reason: Reason
    notes: Optional[str] = None


class PricingAdjustments(InputModel):
    customer_discount_type: Optional[AdjustmentType] = None
    customer_discount_value: NonNegative = Decimal("0")

    @model_validator(mode="after")
    def _discount(self):
        check_adjustment(self.customer_discount_type, self.customer_discount_value, "Customer discount")
        return self


class ConvertToQuoteIn(InputModel):
    valid_until: Optional[date] = None
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    pricing_adjustments: Optional[PricingAdjustments] = None


class CreateRevisionIn(InputModel):
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class EstimateItemOut(APIModel):
    id: uuid.UUID
    item_type: EstimateItemType
    inventory_item_id: Optional[uuid.UUID] = None
    description: str
    unit: Optional[str] = None
    quantity: Decimal
    unit_cost: Decimal
    markup_type: Optional[AdjustmentType] = None
    markup_value: Decimal
    markup_amount: Decimal
    total_cost: Decimal
    total_price: Decimal
    notes: Optional[str] = None


class EstimateLaborItemOut(APIModel):
    id: uuid.UUID
    description: str
    job_title: Optional[str] = None
    rate_type: LaborRateType
    quantity: Decimal
    hours: Decimal
    hourly_rate: Decimal
    days: Decimal
    daily_rate: Decimal
    markup_type: Optional[AdjustmentType] = None
    markup_value: Decimal
    markup_amount: Decimal
    total_cost: Decimal
    total_price: Decimal
    notes: Optional[str] = None


class ActivityOut(APIModel):
    action: str
    description: str
    performed_by: Optional[uuid.UUID] = None
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="metadata_")
    created_at: datetime


class EstimateSummary(APIModel):
    id: uuid.UUID
    estimate_no: str
    service_request_id: uuid.UUID
    title: Optional[str] = None
    status: EstimateStatus
    version: int
    is_latest_version: bool
    total: Decimal
    created_at: datetime


class EstimateOut(EstimateSummary):
    company_id: uuid.UUID
    site_visit_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    parent_estimate_id: Optional[uuid.UUID] = None

    profit_margin_type: Optional[AdjustmentType] = None
    profit_margin_value: Decimal
    discount_type: Optional[AdjustmentType] = None
    discount_value: Decimal
    vat_rate: Decimal

    material_cost: Decimal
    labor_cost: Decimal
    equipment_cost: Decimal
    other_cost: Decimal
    subtotal: Decimal
    profit_amount: Decimal
    discount_amount: Decimal
    total_before_vat: Decimal
    vat_amount: Decimal

    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    revision_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    converted_to_quote_id: Optional[uuid.UUID] = None
    converted_at: Optional[datetime] = None

    items: List[EstimateItemOut] = []
    labor_items: List[EstimateLaborItemOut] = []
    activities: List[ActivityOut] = []


class EstimateStats(APIModel):
    total: int
    by_status: dict[EstimateStatus, int]
    approved_value: Decimal
    approval_rate: Decimal
