# src/fieldops/tests/test_quotes.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fieldops.enums import AdjustmentType, QuoteItemType, QuoteStatus, ServiceRequestStatus
from fieldops.exceptions import InvalidStateTransitionError, PreconditionFailedError, ValidationError
from fieldops.schemas.quotes import QuoteCreate, QuoteItemIn
from fieldops.services import QuoteEngine

pytestmark = pytest.mark.anyio

D = Decimal


def quote_payload(service_request_id, **overrides) -> QuoteCreate:
    fields = dict(
        service_request_id=service_request_id,
        title="Boiler service",
        items=[
            QuoteItemIn(item_type=QuoteItemType.MATERIAL, description="Filter", quantity=D("2"), unit_price=D("12.50")),
            QuoteItemIn(item_type=QuoteItemType.LABOR, description="Technician visit", quantity=D("1"),
                        unit_price=D("75")),
        ],
        discount_type=AdjustmentType.PERCENTAGE,
        discount_value=D("10"),
    )
    fields.update(overrides)
    return QuoteCreate(**fields)


async def test_direct_quote_totals(quote_engine, service_request, load_request):
    quote = await quote_engine.create(quote_payload(service_request.id))

    assert quote.quote_no.startswith("QUO-")
    assert quote.status == QuoteStatus.DRAFT
    assert quote.subtotal == D("100.00")
    assert quote.discount_amount == D("10.00")
    assert quote.tax_rate == D("10")
    assert quote.tax_amount == D("9.00")
    assert quote.total == D("99.00")
    assert [a.action for a in quote.activities] == ["CREATED"]
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.QUOTATION_IN_PROGRESS


async def test_customer_acceptance_flow(quote_engine, service_request):
    quote = await quote_engine.create(quote_payload(service_request.id))

    sent = await quote_engine.send(quote.id)
    assert sent.status == QuoteStatus.SENT and sent.sent_at is not None

    viewed = await quote_engine.mark_viewed(quote.id)
    assert viewed.status == QuoteStatus.VIEWED
    again = await quote_engine.mark_viewed(quote.id)
    assert again.status == QuoteStatus.VIEWED
    assert [a.action for a in again.activities].count("VIEWED") == 1

    accepted = await quote_engine.record_customer_response(quote.id, True, "Go ahead on Monday")
    assert accepted.status == QuoteStatus.ACCEPTED
    assert accepted.customer_notes == "Go ahead on Monday"

    with pytest.raises(InvalidStateTransitionError):
        await quote_engine.cancel(quote.id)


async def test_customer_rejection(quote_engine, service_request):
    quote = await quote_engine.create(quote_payload(service_request.id))
    with pytest.raises(InvalidStateTransitionError):
        await quote_engine.record_customer_response(quote.id, False)
    await quote_engine.send(quote.id)
    rejected = await quote_engine.record_customer_response(quote.id, False, "Found a cheaper offer")
    assert rejected.status == QuoteStatus.REJECTED


async def test_expired_quote_cannot_be_accepted(uow_factory, quote_engine, service_request):
    today = datetime.now(timezone.utc).date()
    quote = await quote_engine.create(quote_payload(service_request.id, valid_until=today + timedelta(days=1)))
    await quote_engine.send(quote.id)

    later = QuoteEngine(uow_factory, clock=lambda: datetime.now(timezone.utc) + timedelta(days=5))
    with pytest.raises(PreconditionFailedError) as info:
        await later.record_customer_response(quote.id, True)
    assert "expired" in info.value.message
    assert (await quote_engine.get(quote.id)).status == QuoteStatus.SENT


async def test_quote_validation(quote_engine, service_request):
    today = datetime.now(timezone.utc).date()
    with pytest.raises(ValidationError):
        await quote_engine.create(quote_payload(service_request.id, valid_until=today - timedelta(days=1)))
    with pytest.raises(ValidationError):
        await quote_engine.create(
            quote_payload(service_request.id, discount_type=AdjustmentType.FIXED, discount_value=D("500"))
        )


async def test_cancel_draft_quote(quote_engine, service_request):
    quote = await quote_engine.create(quote_payload(service_request.id))
    cancelled = await quote_engine.cancel(quote.id, "duplicate")
    assert cancelled.status == QuoteStatus.CANCELLED
    assert cancelled.activities[-1].metadata_ == {"reason": "duplicate"}


async def test_expire_overdue_sweeps_sent_and_viewed(quote_engine, service_request):
    today = datetime.now(timezone.utc).date()
    sent = await quote_engine.create(quote_payload(service_request.id, valid_until=today))
    await quote_engine.send(sent.id)
    viewed = await quote_engine.create(quote_payload(service_request.id, valid_until=today))
    await quote_engine.send(viewed.id)
    await quote_engine.mark_viewed(viewed.id)
    draft = await quote_engine.create(quote_payload(service_request.id, valid_until=today))
    still_valid = await quote_engine.create(quote_payload(service_request.id))
    await quote_engine.send(still_valid.id)

    assert await quote_engine.expire_overdue(today) == []

    expired = await quote_engine.expire_overdue(today + timedelta(days=1))
    assert {q.id for q in expired} == {sent.id, viewed.id}
    for quote_id in (sent.id, viewed.id):
        reloaded = await quote_engine.get(quote_id)
        assert reloaded.status == QuoteStatus.EXPIRED
        assert reloaded.activities[-1].action == "EXPIRED"
    assert (await quote_engine.get(draft.id)).status == QuoteStatus.DRAFT
    assert (await quote_engine.get(still_valid.id)).status == QuoteStatus.SENT

    with pytest.raises(InvalidStateTransitionError):
        await quote_engine.record_customer_response(sent.id, True)
