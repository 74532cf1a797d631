# src/fieldops/tests/test_estimates.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fieldops.enums import (
    AdjustmentType,
    EstimateItemType,
    EstimateStatus,
    QuoteItemType,
    QuoteStatus,
    ServiceRequestStatus,
)
from fieldops.exceptions import InvalidStateTransitionError, PreconditionFailedError, ValidationError
from fieldops.schemas.estimates import (
    ConvertToQuoteIn,
    EstimateCreate,
    EstimateItemIn,
    EstimateLaborItemIn,
    EstimatePatch,
    PricingAdjustments,
)
from fieldops.services import cost_calculator as calc

pytestmark = pytest.mark.anyio

D = Decimal


def reference_payload(service_request_id, **overrides) -> EstimateCreate:
    fields = dict(
        service_request_id=service_request_id,
        title="Replace kitchen sink trap",
        items=[
            EstimateItemIn(
                item_type=EstimateItemType.MATERIAL,
                description="Chrome bottle trap",
                unit="pcs",
                quantity=D("2"),
                unit_cost=D("10"),
                markup_type=AdjustmentType.PERCENTAGE,
                markup_value=D("10"),
            )
        ],
        labor_items=[
            EstimateLaborItemIn(description="Plumber", quantity=D("1"), hours=D("3"), hourly_rate=D("20"))
        ],
        profit_margin_type=AdjustmentType.PERCENTAGE,
        profit_margin_value=D("10"),
        vat_rate=D("10"),
    )
    fields.update(overrides)
    return EstimateCreate(**fields)


async def approved_estimate(engine, service_request_id, **overrides):
    estimate = await engine.create(reference_payload(service_request_id, **overrides))
    await engine.submit_for_approval(estimate.id)
    return await engine.approve(estimate.id, "Looks right")


async def test_create_prices_the_reference_estimate(estimate_engine, service_request, load_request):
    estimate = await estimate_engine.create(reference_payload(service_request.id))

    assert estimate.status == EstimateStatus.DRAFT
    assert estimate.estimate_no.startswith("EST-")
    assert estimate.items[0].total_price == D("22.00")
    assert estimate.labor_items[0].total_price == D("60.00")
    assert estimate.subtotal == D("82.00")
    assert estimate.profit_amount == D("8.20")
    assert estimate.total_before_vat == D("90.20")
    assert estimate.vat_amount == D("9.02")
    assert estimate.total == D("99.22")
    assert [a.action for a in estimate.activities] == ["CREATED"]

    request = await load_request(service_request.id)
    assert request.status == ServiceRequestStatus.ESTIMATION_IN_PROGRESS


async def test_reloaded_totals_keep_the_identity(estimate_engine, service_request):
    created = await estimate_engine.create(
        reference_payload(
            service_request.id,
            discount_type=AdjustmentType.FIXED,
            discount_value=D("4.99"),
            vat_rate=D("12.5"),
        )
    )
    estimate = await estimate_engine.get(created.id)
    assert estimate.total == (
        estimate.subtotal + estimate.profit_amount - estimate.discount_amount + estimate.vat_amount
    )


async def test_approval_flow_updates_service_request(estimate_engine, service_request, load_request):
    estimate = await estimate_engine.create(reference_payload(service_request.id))

    submitted = await estimate_engine.submit_for_approval(estimate.id, "ready")
    assert submitted.status == EstimateStatus.PENDING_MANAGER_APPROVAL
    assert submitted.submitted_at is not None
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.ESTIMATE_PENDING_APPROVAL

    approved = await estimate_engine.approve(estimate.id)
    assert approved.status == EstimateStatus.APPROVED
    assert approved.approved_at is not None
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.ESTIMATE_APPROVED
    assert [a.action for a in approved.activities] == ["CREATED", "SUBMITTED", "APPROVED"]


async def test_second_decision_is_refused(estimate_engine, service_request):
    estimate = await approved_estimate(estimate_engine, service_request.id)
    with pytest.raises(InvalidStateTransitionError) as info:
        await estimate_engine.reject(estimate.id, "changed my mind")
    assert "APPROVED" in info.value.message
    assert "PENDING_MANAGER_APPROVAL" in info.value.message
    assert (await estimate_engine.get(estimate.id)).status == EstimateStatus.APPROVED


async def test_submit_requires_at_least_one_line(estimate_engine, service_request):
    estimate = await estimate_engine.create(EstimateCreate(service_request_id=service_request.id))
    with pytest.raises(PreconditionFailedError):
        await estimate_engine.submit_for_approval(estimate.id)
    assert (await estimate_engine.get(estimate.id)).status == EstimateStatus.DRAFT


async def test_reject_and_revision_need_a_reason(estimate_engine, service_request):
    estimate = await estimate_engine.create(reference_payload(service_request.id))
    await estimate_engine.submit_for_approval(estimate.id)
    with pytest.raises(ValidationError):
        await estimate_engine.reject(estimate.id, "   ")
    with pytest.raises(ValidationError):
        await estimate_engine.request_revision(estimate.id, "")

    rejected = await estimate_engine.reject(estimate.id, "Labor estimate too high")
    assert rejected.status == EstimateStatus.REJECTED
    assert rejected.rejection_reason == "Labor estimate too high"


async def test_update_replaces_children_and_recalculates(estimate_engine, service_request):
    estimate = await estimate_engine.create(reference_payload(service_request.id))
    updated = await estimate_engine.update(
        estimate.id,
        EstimatePatch(
            title="Replace trap and hose",
            items=[
                EstimateItemIn(description="Braided hose", quantity=D("1"), unit_cost=D("15")),
                EstimateItemIn(
                    item_type=EstimateItemType.EQUIPMENT, description="Drain camera", quantity=D("1"),
                    unit_cost=D("40"),
                ),
            ],
        ),
    )
    assert updated.title == "Replace trap and hose"
    assert sorted(i.description for i in updated.items) == ["Braided hose", "Drain camera"]
    assert len(updated.labor_items) == 1
    assert updated.material_cost == D("15.00")
    assert updated.equipment_cost == D("40.00")
    assert updated.subtotal == D("115.00")
    assert updated.activities[-1].action == "UPDATED"

    reloaded = await estimate_engine.get(estimate.id)
    assert len(reloaded.items) == 2


async def test_update_refused_once_submitted(estimate_engine, service_request):
    estimate = await estimate_engine.create(reference_payload(service_request.id))
    await estimate_engine.submit_for_approval(estimate.id)
    with pytest.raises(InvalidStateTransitionError):
        await estimate_engine.update(estimate.id, EstimatePatch(title="sneaky edit"))


async def test_convert_to_quote_copies_every_line(estimate_engine, service_request, load_request):
    estimate = await approved_estimate(
        estimate_engine,
        service_request.id,
        items=[
            EstimateItemIn(description="Trap", quantity=D("2"), unit_cost=D("10"),
                           markup_type=AdjustmentType.PERCENTAGE, markup_value=D("10")),
            EstimateItemIn(item_type=EstimateItemType.EQUIPMENT, description="Pipe wrench hire",
                           quantity=D("3"), unit_cost=D("3.33")),
        ],
        labor_items=[
            EstimateLaborItemIn(description="Plumber", quantity=D("2"), hours=D("1.5"), hourly_rate=D("30")),
        ],
    )

    quote = await estimate_engine.convert_to_quote(estimate.id, ConvertToQuoteIn())

    assert quote.status == QuoteStatus.DRAFT
    assert quote.estimate_id == estimate.id
    assert len(quote.items) == 3
    assert quote.subtotal == sum((calc.money(i.quantity * i.unit_price) for i in quote.items), D("0"))
    labor_line = [i for i in quote.items if i.item_type == QuoteItemType.LABOR][0]
    assert labor_line.quantity == D("1")
    assert labor_line.total == D("90.00")
    assert "2 worker(s) x 1.5 hours" in labor_line.description
    assert quote.tax_rate == D("10")
    assert quote.valid_until == datetime.now(timezone.utc).date() + timedelta(days=30)

    converted = await estimate_engine.get(estimate.id)
    assert converted.status == EstimateStatus.CONVERTED
    assert converted.converted_to_quote_id == quote.id
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.QUOTATION_IN_PROGRESS


@pytest.mark.parametrize("steps", [(), ("submit",), ("submit", "revise"), ("submit", "reject"), ("cancel",)])
async def test_convert_only_from_approved(estimate_engine, service_request, steps):
    estimate = await estimate_engine.create(reference_payload(service_request.id))
    for step in steps:
        if step == "submit":
            await estimate_engine.submit_for_approval(estimate.id)
        elif step == "revise":
            await estimate_engine.request_revision(estimate.id, "add disposal fee")
        elif step == "reject":
            await estimate_engine.reject(estimate.id, "no")
        elif step == "cancel":
            await estimate_engine.cancel(estimate.id, "customer withdrew")
    before = (await estimate_engine.get(estimate.id)).status

    with pytest.raises(InvalidStateTransitionError):
        await estimate_engine.convert_to_quote(estimate.id, ConvertToQuoteIn())
    assert (await estimate_engine.get(estimate.id)).status == before
    assert before != EstimateStatus.CONVERTED


async def test_failed_conversion_leaves_nothing_behind(estimate_engine, quote_engine, service_request):
    estimate = await approved_estimate(estimate_engine, service_request.id)
    with pytest.raises(ValidationError):
        await estimate_engine.convert_to_quote(
            estimate.id,
            ConvertToQuoteIn(
                pricing_adjustments=PricingAdjustments(
                    customer_discount_type=AdjustmentType.FIXED, customer_discount_value=D("1000"),
                )
            ),
        )
    assert (await estimate_engine.get(estimate.id)).status == EstimateStatus.APPROVED
    quotes, total = await quote_engine.list(service_request_id=service_request.id)
    assert total == 0


async def test_convert_rejects_past_validity(estimate_engine, service_request):
    estimate = await approved_estimate(estimate_engine, service_request.id)
    with pytest.raises(ValidationError):
        await estimate_engine.convert_to_quote(
            estimate.id, ConvertToQuoteIn(valid_until=datetime.now(timezone.utc).date() - timedelta(days=1))
        )


async def test_revision_chain(estimate_engine, service_request):
    estimate = await estimate_engine.create(reference_payload(service_request.id))
    await estimate_engine.submit_for_approval(estimate.id)
    await estimate_engine.request_revision(estimate.id, "split labor by day")

    revision = await estimate_engine.create_revision(estimate.id, "v2 notes")
    assert revision.estimate_no == f"{estimate.estimate_no}-V2"
    assert revision.version == 2
    assert revision.parent_estimate_id == estimate.id
    assert revision.status == EstimateStatus.DRAFT
    assert revision.total == estimate.total
    assert len(revision.items) == len(estimate.items)

    original = await estimate_engine.get(estimate.id)
    assert original.is_latest_version is False
    assert original.activities[-1].action == "SUPERSEDED"

    with pytest.raises(PreconditionFailedError):
        await estimate_engine.create_revision(estimate.id)

    versions = await estimate_engine.versions(revision.id)
    assert [v.version for v in versions] == [1, 2]

    listed, total = await estimate_engine.list(service_request_id=service_request.id)
    assert total == 1
    assert listed[0].id == revision.id


async def test_superseded_version_is_frozen(estimate_engine, service_request):
    estimate = await estimate_engine.create(reference_payload(service_request.id))
    await estimate_engine.submit_for_approval(estimate.id)
    await estimate_engine.request_revision(estimate.id, "split labor by day")
    revision = await estimate_engine.create_revision(estimate.id)

    with pytest.raises(PreconditionFailedError) as info:
        await estimate_engine.update(estimate.id, EstimatePatch(title="edited old version"))
    assert "superseded" in info.value.message
    with pytest.raises(PreconditionFailedError):
        await estimate_engine.submit_for_approval(estimate.id)

    old = await estimate_engine.get(estimate.id)
    assert old.status == EstimateStatus.REVISION_REQUESTED
    assert old.title == "Replace kitchen sink trap"

    await estimate_engine.submit_for_approval(revision.id)
    await estimate_engine.approve(revision.id)
    quote = await estimate_engine.convert_to_quote(revision.id, ConvertToQuoteIn())
    assert quote.estimate_id == revision.id


async def test_site_visit_must_belong_to_request(estimate_engine, site_visit, make_request):
    other = await make_request(request_no="SR-2025-0099")
    with pytest.raises(ValidationError):
        await estimate_engine.create(
            EstimateCreate(service_request_id=other.id, site_visit_id=site_visit.id)
        )
    estimate = await estimate_engine.create(
        EstimateCreate(service_request_id=site_visit.service_request_id, site_visit_id=site_visit.id)
    )
    assert estimate.site_visit_id == site_visit.id


async def test_closed_request_takes_no_estimates(estimate_engine, make_request):
    closed = await make_request(request_no="SR-2025-0100", status=ServiceRequestStatus.CANCELLED)
    with pytest.raises(PreconditionFailedError):
        await estimate_engine.create(reference_payload(closed.id))


async def test_delete_only_in_draft(estimate_engine, service_request):
    draft = await estimate_engine.create(reference_payload(service_request.id))
    await estimate_engine.delete(draft.id)
    listed, total = await estimate_engine.list(service_request_id=service_request.id)
    assert total == 0

    approved = await approved_estimate(estimate_engine, service_request.id)
    with pytest.raises(InvalidStateTransitionError):
        await estimate_engine.delete(approved.id)


async def test_stats(estimate_engine, service_request, company_id):
    await approved_estimate(estimate_engine, service_request.id)
    rejected = await estimate_engine.create(reference_payload(service_request.id))
    await estimate_engine.submit_for_approval(rejected.id)
    await estimate_engine.reject(rejected.id, "no")
    await estimate_engine.create(reference_payload(service_request.id))

    stats = await estimate_engine.stats(company_id)
    assert stats["total"] == 3
    assert stats["by_status"][EstimateStatus.DRAFT] == 1
    assert stats["approved_value"] == D("99.22")
    assert stats["approval_rate"] == D("50.00")
