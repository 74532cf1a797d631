"""
Pure pricing functions for estimates, quotes and work orders.

All amounts are ``Decimal``. Each aggregate step is rounded to cents
(ROUND_HALF_UP) before it feeds the next one, so the identities

    total_before_vat == subtotal + profit_amount - discount_amount
    total            == total_before_vat + vat_amount

hold exactly on the stored values. The order is fixed: profit is added to
the subtotal, the discount is taken from (subtotal + profit), and VAT is
charged on what remains.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from fieldops.enums import AdjustmentType, EstimateItemType, LaborRateType
from fieldops.exceptions import ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")
UNIT_PRICE_PLACES = Decimal("0.0001")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 don't drag binary noise in
    return Decimal(str(value))


def money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_adjustment(
    base,
    adjustment_type: Optional[AdjustmentType],
    value,
) -> Decimal:
    """
    Amount of a markup/profit/discount against ``base``.

    Nothing is applied unless a type is set and the value is positive.
    """
    value = to_decimal(value)
    if adjustment_type is None or value <= ZERO:
        return ZERO
    if adjustment_type == AdjustmentType.PERCENTAGE:
        return money(to_decimal(base) * value / HUNDRED)
    return money(value)


@dataclass(frozen=True)
class LineCost:
    total_cost: Decimal
    markup_amount: Decimal
    total_price: Decimal


def calculate_item(
    quantity,
    unit_cost,
    markup_type: Optional[AdjustmentType] = None,
    markup_value=None,
) -> LineCost:
    total_cost = money(to_decimal(quantity) * to_decimal(unit_cost))
    markup = apply_adjustment(total_cost, markup_type, markup_value)
    return LineCost(total_cost=total_cost, markup_amount=markup, total_price=total_cost + markup)


def calculate_labor(
    quantity=1,
    hours=None,
    hourly_rate=None,
    markup_type: Optional[AdjustmentType] = None,
    markup_value=None,
    rate_type: LaborRateType = LaborRateType.HOURLY,
    days=None,
    daily_rate=None,
) -> LineCost:
    """quantity (workers) x hours x hourly rate, or x days x daily rate for DAILY lines."""
    if rate_type == LaborRateType.DAILY:
        raw = to_decimal(quantity) * to_decimal(days) * to_decimal(daily_rate)
    else:
        raw = to_decimal(quantity) * to_decimal(hours) * to_decimal(hourly_rate)
    total_cost = money(raw)
    markup = apply_adjustment(total_cost, markup_type, markup_value)
    return LineCost(total_cost=total_cost, markup_amount=markup, total_price=total_cost + markup)


@dataclass(frozen=True)
class EstimateTotals:
    material_cost: Decimal
    labor_cost: Decimal
    equipment_cost: Decimal
    other_cost: Decimal
    subtotal: Decimal
    profit_amount: Decimal
    discount_amount: Decimal
    total_before_vat: Decimal
    vat_amount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "material_cost": self.material_cost,
            "labor_cost": self.labor_cost,
            "equipment_cost": self.equipment_cost,
            "other_cost": self.other_cost,
            "subtotal": self.subtotal,
            "profit_amount": self.profit_amount,
            "discount_amount": self.discount_amount,
            "total_before_vat": self.total_before_vat,
            "vat_amount": self.vat_amount,
            "total": self.total,
        }


def calculate_totals(
    items: Iterable[Tuple[EstimateItemType, LineCost]],
    labor_items: Iterable[LineCost],
    profit_margin_type: Optional[AdjustmentType] = None,
    profit_margin_value=None,
    discount_type: Optional[AdjustmentType] = None,
    discount_value=None,
    vat_rate=None,
) -> EstimateTotals:
    material = equipment = other = labor = ZERO
    subtotal = ZERO

    for item_type, line in items:
        if item_type == EstimateItemType.MATERIAL:
            material += line.total_cost
        elif item_type == EstimateItemType.EQUIPMENT:
            equipment += line.total_cost
        else:
            other += line.total_cost
        subtotal += line.total_price

    for line in labor_items:
        labor += line.total_cost
        subtotal += line.total_price

    profit = apply_adjustment(subtotal, profit_margin_type, profit_margin_value)
    discount = apply_adjustment(subtotal + profit, discount_type, discount_value)
    if discount > subtotal + profit:
        raise ValidationError(
            f"Discount {discount} exceeds the discountable amount {subtotal + profit}",
            field="discount_value",
        )
    total_before_vat = subtotal + profit - discount
    vat = money(total_before_vat * to_decimal(vat_rate) / HUNDRED)

    return EstimateTotals(
        material_cost=material,
        labor_cost=labor,
        equipment_cost=equipment,
        other_cost=other,
        subtotal=subtotal,
        profit_amount=profit,
        discount_amount=discount,
        total_before_vat=total_before_vat,
        vat_amount=vat,
        total=total_before_vat + vat,
    )


# -----------------------------------------------------------------------------
# Quotes
# -----------------------------------------------------------------------------

def unit_price_for(total_price, quantity) -> Decimal:
    """Selling price per unit for a line whose total is already known."""
    quantity = to_decimal(quantity)
    if quantity <= ZERO:
        raise ValidationError("Quantity must be greater than zero", field="quantity")
    return (to_decimal(total_price) / quantity).quantize(UNIT_PRICE_PLACES, rounding=ROUND_HALF_UP)


def quote_line_total(quantity, unit_price) -> Decimal:
    return money(to_decimal(quantity) * to_decimal(unit_price))


@dataclass(frozen=True)
class QuoteTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal


def calculate_quote_totals(
    line_totals: Iterable,
    discount_type: Optional[AdjustmentType] = None,
    discount_value=None,
    tax_rate=None,
) -> QuoteTotals:
    subtotal = sum((money(t) for t in line_totals), ZERO)
    discount = apply_adjustment(subtotal, discount_type, discount_value)
    if discount > subtotal:
        raise ValidationError(
            f"Customer discount {discount} exceeds the quote subtotal {subtotal}",
            field="customer_discount",
        )
    tax = money((subtotal - discount) * to_decimal(tax_rate) / HUNDRED)
    return QuoteTotals(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total=subtotal - discount + tax,
    )


# -----------------------------------------------------------------------------
# Work orders
# -----------------------------------------------------------------------------

def worked_minutes(clock_in_at: datetime, clock_out_at: datetime, break_minutes: int = 0) -> int:
    """Elapsed minutes (rounded half-up) less the break, never negative."""
    elapsed = Decimal(str((clock_out_at - clock_in_at).total_seconds())) / Decimal(60)
    minutes = int(elapsed.quantize(Decimal(1), rounding=ROUND_HALF_UP)) - int(break_minutes or 0)
    return max(minutes, 0)


@dataclass(frozen=True)
class WorkOrderCosts:
    material_cost: Decimal
    labor_cost: Decimal
    additional_cost: Decimal
    total_cost: Decimal


def calculate_work_order_costs(
    item_totals: Iterable,
    labor_entries: Iterable[Tuple[int, Optional[Decimal]]],
    additional_cost,
    default_hourly_rate,
) -> WorkOrderCosts:
    """
    ``labor_entries`` are (total_minutes, hourly_rate) pairs; entries with no
    rate of their own are billed at ``default_hourly_rate``.
    """
    material = sum((money(t) for t in item_totals), ZERO)
    raw_labor = ZERO
    for minutes, rate in labor_entries:
        effective = to_decimal(rate) if rate else to_decimal(default_hourly_rate)
        raw_labor += Decimal(minutes or 0) / Decimal(60) * effective
    labor = money(raw_labor)
    additional = money(additional_cost)
    return WorkOrderCosts(
        material_cost=material,
        labor_cost=labor,
        additional_cost=additional,
        total_cost=material + labor + additional,
    )
