# src/fieldops/tests/test_cost_calculator.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import product

import pytest

from fieldops.enums import AdjustmentType, EstimateItemType, LaborRateType
from fieldops.exceptions import ValidationError
from fieldops.services import cost_calculator as calc

D = Decimal
PCT = AdjustmentType.PERCENTAGE
FIXED = AdjustmentType.FIXED


def test_reference_estimate_totals():
    material = calc.calculate_item(2, 10, PCT, 10)
    labor = calc.calculate_labor(quantity=1, hours=3, hourly_rate=20)
    assert material.total_price == D("22.00")
    assert labor.total_price == D("60.00")

    totals = calc.calculate_totals(
        [(EstimateItemType.MATERIAL, material)], [labor],
        profit_margin_type=PCT, profit_margin_value=10, vat_rate=10,
    )
    assert totals.subtotal == D("82.00")
    assert totals.profit_amount == D("8.20")
    assert totals.discount_amount == D("0")
    assert totals.total_before_vat == D("90.20")
    assert totals.vat_amount == D("9.02")
    assert totals.total == D("99.22")
    assert totals.material_cost == D("20.00")
    assert totals.labor_cost == D("60.00")


def test_fixed_markup_profit_and_discount():
    item = calc.calculate_item(3, D("4.50"), FIXED, 5)
    assert item.total_cost == D("13.50")
    assert item.markup_amount == D("5.00")
    assert item.total_price == D("18.50")

    totals = calc.calculate_totals(
        [(EstimateItemType.EQUIPMENT, item)], [],
        profit_margin_type=FIXED, profit_margin_value=D("1.50"),
        discount_type=FIXED, discount_value=D("5"),
        vat_rate=D("7.5"),
    )
    assert totals.equipment_cost == D("13.50")
    assert totals.total_before_vat == D("15.00")
    assert totals.vat_amount == D("1.13")
    assert totals.total == D("16.13")


def test_item_types_are_bucketed():
    lines = [
        (EstimateItemType.MATERIAL, calc.calculate_item(1, 10)),
        (EstimateItemType.EQUIPMENT, calc.calculate_item(1, 20)),
        (EstimateItemType.CONSUMABLE, calc.calculate_item(1, 3)),
        (EstimateItemType.TRANSPORT, calc.calculate_item(1, 4)),
    ]
    totals = calc.calculate_totals(lines, [])
    assert (totals.material_cost, totals.equipment_cost, totals.other_cost) == (D("10.00"), D("20.00"), D("7.00"))
    assert totals.subtotal == D("37.00")
    assert totals.total == D("37.00")


@pytest.mark.parametrize(
    "markup,profit,discount",
    list(product([(None, 0), (PCT, D("12.5")), (FIXED, D("3.33"))], repeat=3)),
)
def test_total_identity_holds_for_every_adjustment_mix(markup, profit, discount):
    items = [
        (EstimateItemType.MATERIAL, calc.calculate_item(D("3"), D("7.77"), *markup)),
        (EstimateItemType.OTHER, calc.calculate_item(D("1.5"), D("19.99"), *markup)),
    ]
    labor = [calc.calculate_labor(2, D("2.25"), D("31.40"), *markup)]
    totals = calc.calculate_totals(
        items, labor,
        profit_margin_type=profit[0], profit_margin_value=profit[1],
        discount_type=discount[0], discount_value=discount[1],
        vat_rate=D("15"),
    )
    assert totals.total_before_vat == totals.subtotal + totals.profit_amount - totals.discount_amount
    assert totals.total == (
        totals.subtotal + totals.profit_amount - totals.discount_amount + totals.vat_amount
    )
    for amount in totals.as_dict().values():
        assert amount == amount.quantize(calc.CENT)


def test_daily_labor_uses_days_and_daily_rate():
    line = calc.calculate_labor(
        quantity=2, rate_type=LaborRateType.DAILY, days=D("1.5"), daily_rate=200,
        hours=99, hourly_rate=99,
    )
    assert line.total_cost == D("600.00")


def test_adjustment_ignored_without_type_or_positive_value():
    assert calc.apply_adjustment(100, None, 10) == D("0")
    assert calc.apply_adjustment(100, PCT, 0) == D("0")
    assert calc.apply_adjustment(D("33.33"), PCT, D("33.333")) == D("11.11")


def test_rounding_is_half_up_to_cents():
    assert calc.money(D("0.005")) == D("0.01")
    assert calc.money(D("2.675")) == D("2.68")
    assert calc.money(0.1) == D("0.10")


def test_fixed_discount_larger_than_total_is_rejected():
    with pytest.raises(ValidationError):
        calc.calculate_totals(
            [(EstimateItemType.MATERIAL, calc.calculate_item(1, 10))], [],
            discount_type=FIXED, discount_value=50,
        )


def test_quote_totals_and_unit_price():
    assert calc.unit_price_for(D("22.00"), 2) == D("11.0000")
    assert calc.unit_price_for(D("10.00"), 3) == D("3.3333")
    with pytest.raises(ValidationError):
        calc.unit_price_for(10, 0)

    totals = calc.calculate_quote_totals([D("22.00"), D("60.00")], PCT, 10, 10)
    assert totals.subtotal == D("82.00")
    assert totals.discount_amount == D("8.20")
    assert totals.tax_amount == D("7.38")
    assert totals.total == D("81.18")


def test_worked_minutes_subtracts_break_and_floors_at_zero():
    start = datetime(2025, 3, 4, 8, 0, tzinfo=timezone.utc)
    assert calc.worked_minutes(start, start + timedelta(hours=2, seconds=40), 15) == 106
    assert calc.worked_minutes(start, start + timedelta(minutes=10), 30) == 0


def test_work_order_costs_fall_back_to_default_rate():
    costs = calc.calculate_work_order_costs(
        [D("12.50"), D("7.50")],
        [(90, D("40")), (30, None)],
        D("5"),
        D("25"),
    )
    assert costs.material_cost == D("20.00")
    assert costs.labor_cost == D("72.50")
    assert costs.total_cost == D("97.50")
