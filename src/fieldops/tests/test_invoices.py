# src/fieldops/tests/test_invoices.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fieldops.enums import InvoiceStatus, PaymentMethod, ServiceRequestStatus
from fieldops.exceptions import InvalidStateTransitionError, PreconditionFailedError, ValidationError
from fieldops.schemas.invoices import InvoiceGenerateIn
from fieldops.schemas.work_orders import CompleteIn, TeamMemberIn, WorkOrderCreate, WorkOrderItemIn

pytestmark = pytest.mark.anyio

D = Decimal
CASHIER = uuid.uuid4()


def today():
    return datetime.now(timezone.utc).date()


async def finish_job(work_order_engine, service_request_id):
    work_order = await work_order_engine.create(
        WorkOrderCreate(
            service_request_id=service_request_id,
            title="Replace kitchen sink trap",
            items=[WorkOrderItemIn(description="Bottle trap", unit="pcs", quantity=D("2"), unit_cost=D("12.50"))],
        )
    )
    await work_order_engine.assign_team(work_order.id, [TeamMemberIn(employee_id=uuid.uuid4())])
    await work_order_engine.start_work(work_order.id)
    return await work_order_engine.complete(work_order.id, CompleteIn(work_performed="Trap replaced"))


@pytest.fixture
async def invoice(invoice_engine, work_order_engine, service_request):
    await finish_job(work_order_engine, service_request.id)
    return await invoice_engine.generate_from_service_request(
        InvoiceGenerateIn(service_request_id=service_request.id)
    )


@pytest.fixture
async def sent_invoice(invoice_engine, invoice):
    return await invoice_engine.send(invoice.id)


async def test_generate_bills_materials_and_service_charge(invoice, service_request, load_request):
    assert invoice.invoice_no.startswith("INV-")
    assert invoice.status == InvoiceStatus.DRAFT
    assert [line.description for line in invoice.items] == ["Bottle trap", "Service charge"]
    assert [line.total for line in invoice.items] == [D("25.00"), D("50.00")]
    assert invoice.subtotal == D("75.00")
    assert invoice.tax_rate == D("5")
    assert invoice.tax_amount == D("3.75")
    assert invoice.total == D("78.75")
    assert invoice.issue_date == today()
    assert invoice.due_date == today() + timedelta(days=30)
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.INVOICED


async def test_generate_requires_completed_request(invoice_engine, service_request):
    with pytest.raises(PreconditionFailedError):
        await invoice_engine.generate_from_service_request(InvoiceGenerateIn(service_request_id=service_request.id))


async def test_generate_only_once(invoice_engine, invoice, service_request):
    with pytest.raises(PreconditionFailedError):
        await invoice_engine.generate_from_service_request(InvoiceGenerateIn(service_request_id=service_request.id))


async def test_generate_refuses_an_empty_invoice(invoice_engine, make_request):
    request = await make_request(
        request_no="SR-2025-0002", service_charge="0.00", status=ServiceRequestStatus.COMPLETED
    )
    with pytest.raises(PreconditionFailedError) as info:
        await invoice_engine.generate_from_service_request(InvoiceGenerateIn(service_request_id=request.id))
    assert "no materials or service charge" in info.value.message


async def test_generate_rejects_past_due_date(invoice_engine, make_request):
    request = await make_request(request_no="SR-2025-0003", status=ServiceRequestStatus.COMPLETED)
    with pytest.raises(ValidationError):
        await invoice_engine.generate_from_service_request(
            InvoiceGenerateIn(service_request_id=request.id, due_date=today() - timedelta(days=1))
        )


async def test_service_charge_alone_is_billable(invoice_engine, make_request):
    request = await make_request(request_no="SR-2025-0004", status=ServiceRequestStatus.COMPLETED)
    invoice = await invoice_engine.generate_from_service_request(InvoiceGenerateIn(service_request_id=request.id))
    assert len(invoice.items) == 1
    assert invoice.total == D("52.50")


async def test_payment_on_draft_is_refused(invoice_engine, invoice):
    with pytest.raises(InvalidStateTransitionError):
        await invoice_engine.record_payment(invoice.id, D("10"), PaymentMethod.CASH)


async def test_exact_balance_settles_invoice_and_request(invoice_engine, sent_invoice, service_request, load_request):
    payment = await invoice_engine.record_payment(
        sent_invoice.id, D("78.75"), PaymentMethod.BANK_TRANSFER, reference="TRX-881", actor_id=CASHIER
    )
    assert payment.payment_no.startswith("PAY-")
    assert payment.received_by == CASHIER
    assert payment.receipt.receipt_no.startswith("RCP-")
    assert payment.receipt.balance_after == D("0.00")

    paid = await invoice_engine.get(sent_invoice.id)
    assert paid.status == InvoiceStatus.PAID
    assert paid.paid_amount == D("78.75")
    assert paid.balance == D("0.00")
    assert paid.paid_at is not None
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.PAID

    with pytest.raises(InvalidStateTransitionError):
        await invoice_engine.record_payment(sent_invoice.id, D("1"), PaymentMethod.CASH)


async def test_overpayment_by_a_cent_is_refused(invoice_engine, sent_invoice):
    with pytest.raises(PreconditionFailedError) as info:
        await invoice_engine.record_payment(sent_invoice.id, D("78.76"), PaymentMethod.CASH)
    assert info.value.message == "Payment amount exceeds remaining balance of 78.75"

    untouched = await invoice_engine.get(sent_invoice.id)
    assert untouched.status == InvoiceStatus.SENT
    assert untouched.paid_amount == D("0.00")
    assert untouched.payments == []


@pytest.mark.parametrize("amount", [D("0"), D("-5"), D("78.754"), D("0.001")])
async def test_malformed_payment_amount_is_refused(invoice_engine, sent_invoice, amount):
    with pytest.raises(ValidationError):
        await invoice_engine.record_payment(sent_invoice.id, amount, PaymentMethod.CASH)
    assert (await invoice_engine.get(sent_invoice.id)).paid_amount == D("0.00")


async def test_partial_payments_and_receipts(invoice_engine, sent_invoice, service_request, load_request):
    await invoice_engine.record_payment(sent_invoice.id, D("30"), PaymentMethod.CASH)
    partial = await invoice_engine.get(sent_invoice.id)
    assert partial.status == InvoiceStatus.PARTIAL
    assert partial.balance == D("48.75")
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.INVOICED

    await invoice_engine.record_payment(sent_invoice.id, D("48.75"), PaymentMethod.CARD)
    receipts = await invoice_engine.receipts(sent_invoice.id)
    assert [(r.amount, r.previously_paid, r.balance_after) for r in receipts] == [
        (D("30.00"), D("0.00"), D("48.75")),
        (D("48.75"), D("30.00"), D("0.00")),
    ]
    assert len({r.receipt_no for r in receipts}) == 2
    assert (await invoice_engine.get(sent_invoice.id)).status == InvoiceStatus.PAID


async def test_mark_overdue_and_cancel_rules(invoice_engine, sent_invoice):
    assert await invoice_engine.mark_overdue(today=sent_invoice.due_date) == []

    overdue = await invoice_engine.mark_overdue(today=sent_invoice.due_date + timedelta(days=1))
    assert [i.id for i in overdue] == [sent_invoice.id]
    assert (await invoice_engine.get(sent_invoice.id)).status == InvoiceStatus.OVERDUE

    await invoice_engine.record_payment(sent_invoice.id, D("10"), PaymentMethod.CASH)
    again = await invoice_engine.mark_overdue(today=sent_invoice.due_date + timedelta(days=2))
    assert [i.status for i in again] == [InvoiceStatus.OVERDUE]

    with pytest.raises(PreconditionFailedError):
        await invoice_engine.cancel(sent_invoice.id)


async def test_cancel_unpaid_invoice(invoice_engine, invoice):
    cancelled = await invoice_engine.cancel(invoice.id)
    assert cancelled.status == InvoiceStatus.CANCELLED
    assert cancelled.cancelled_at is not None

    with pytest.raises(InvalidStateTransitionError):
        await invoice_engine.send(invoice.id)
