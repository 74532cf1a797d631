"""
Invoice/Payment Engine.

Bills a completed service request once: one line per material consumed on
its completed work orders plus the request's service charge, taxed at the
flat invoice rate. Payments may be partial; each one is numbered, moves the
invoice to PARTIAL or PAID and is acknowledged with a receipt.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional, Sequence
from uuid import UUID

from fieldops.app_logger import get_logger
from fieldops.core.config import Settings, settings as default_settings
from fieldops.db.base import utcnow
from fieldops.db.models import Invoice, InvoiceItem, Payment, Receipt
from fieldops.enums import (
    DocumentType,
    InvoiceStatus,
    PaymentMethod,
    ServiceRequestStatus,
    WorkOrderStatus,
)
from fieldops.exceptions import PreconditionFailedError, ValidationError
from fieldops.repositories import UnitOfWorkFactory
from fieldops.schemas.invoices import InvoiceGenerateIn

from . import cost_calculator as calc
from .numbering import NumberingService, with_number_retry
from .state_machines import invoice_machine

log = get_logger(__name__)

SERVICE_CHARGE_DESCRIPTION = "Service charge"


class InvoiceEngine:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        numbering: Optional[NumberingService] = None,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow_factory = uow_factory
        self.numbering = numbering or NumberingService(clock=clock)
        self.settings = settings
        self.clock = clock

    async def get(self, invoice_id: UUID) -> Invoice:
        async with self.uow_factory() as uow:
            return await uow.invoices.require(invoice_id)

    async def receipts(self, invoice_id: UUID) -> Sequence[Receipt]:
        async with self.uow_factory() as uow:
            await uow.invoices.require(invoice_id)
            return await uow.invoices.receipts(invoice_id)

    async def generate_from_service_request(
        self, data: InvoiceGenerateIn, actor_id: Optional[UUID] = None
    ) -> Invoice:
        today = self.clock().date()
        due_date = data.due_date or today + timedelta(days=self.settings.INVOICE_DUE_DAYS)
        if due_date < today:
            raise ValidationError("due_date cannot be before the issue date", field="due_date")

        async def attempt() -> Invoice:
            async with self.uow_factory() as uow:
                request = await uow.service_requests.require(data.service_request_id, lock=True)
                if request.status != ServiceRequestStatus.COMPLETED:
                    raise PreconditionFailedError(
                        f"Service request {request.request_no} is {request.status.value}; "
                        f"only COMPLETED requests can be invoiced",
                        context={"service_request_id": str(request.id)},
                    )
                existing = await uow.invoices.for_service_request(request.id)
                if existing is not None:
                    raise PreconditionFailedError(
                        f"Invoice {existing.invoice_no} already exists for service request {request.request_no}",
                        context={"invoice_id": str(existing.id)},
                    )

                lines: list[InvoiceItem] = []
                for work_order in await uow.work_orders.for_service_request(request.id, WorkOrderStatus.COMPLETED):
                    for item in work_order.items:
                        lines.append(
                            InvoiceItem(
                                description=item.description,
                                quantity=item.quantity,
                                unit_price=item.unit_cost,
                                total=calc.money(item.total_cost),
                                sort_order=len(lines),
                            )
                        )
                if request.service_charge and request.service_charge > 0:
                    lines.append(
                        InvoiceItem(
                            description=SERVICE_CHARGE_DESCRIPTION,
                            quantity=Decimal("1"),
                            unit_price=request.service_charge,
                            total=calc.money(request.service_charge),
                            sort_order=len(lines),
                        )
                    )
                if not lines:
                    raise PreconditionFailedError(
                        f"Service request {request.request_no} has no materials or service charge to invoice"
                    )

                subtotal = sum((line.total for line in lines), calc.ZERO)
                tax_rate = self.settings.INVOICE_TAX_RATE
                tax = calc.money(subtotal * tax_rate / calc.HUNDRED)
                number = await self.numbering.next(uow, DocumentType.INVOICE, request.company_id)
                invoice = Invoice(
                    company_id=request.company_id,
                    invoice_no=number,
                    service_request_id=request.id,
                    customer_id=request.customer_id,
                    status=InvoiceStatus.DRAFT,
                    issue_date=today,
                    due_date=due_date,
                    notes=data.notes,
                    subtotal=subtotal,
                    tax_rate=tax_rate,
                    tax_amount=tax,
                    total=subtotal + tax,
                    paid_amount=Decimal("0.00"),
                    created_by=actor_id,
                    items=lines,
                    payments=[],
                )
                await uow.invoices.add(invoice)
                await uow.service_requests.set_status(request, ServiceRequestStatus.INVOICED)
                log.info("invoice %s generated for %s (total %s)", number, request.request_no, invoice.total)
                return invoice

        return await with_number_retry(attempt, DocumentType.INVOICE, self.settings.NUMBER_COLLISION_RETRIES)

    async def send(self, invoice_id: UUID) -> Invoice:
        async with self.uow_factory() as uow:
            invoice = await uow.invoices.require(invoice_id, lock=True)
            invoice.status = invoice_machine.guard("send", invoice.status)
            invoice.sent_at = self.clock()
            await uow.flush()
            log.info("invoice %s sent", invoice.invoice_no)
            return invoice

    async def cancel(self, invoice_id: UUID) -> Invoice:
        async with self.uow_factory() as uow:
            invoice = await uow.invoices.require(invoice_id, lock=True)
            target = invoice_machine.guard("cancel", invoice.status)
            if invoice.payments:
                raise PreconditionFailedError(
                    f"Invoice {invoice.invoice_no} has recorded payments and cannot be cancelled"
                )
            invoice.status = target
            invoice.cancelled_at = self.clock()
            await uow.flush()
            log.info("invoice %s cancelled", invoice.invoice_no)
            return invoice

    async def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        actor_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Apply a payment against the remaining balance.

        An amount exactly equal to the balance settles the invoice; anything
        above it is refused without touching the invoice.
        """
        amount = calc.to_decimal(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero", field="amount")
        if calc.money(amount) != amount:
            raise ValidationError("Payment amount cannot have more than 2 decimal places", field="amount")

        async def attempt() -> Payment:
            async with self.uow_factory() as uow:
                invoice = await uow.invoices.require(invoice_id, lock=True)
                invoice_machine.guard("pay", invoice.status)
                previously_paid = calc.money(invoice.paid_amount)
                balance = calc.money(invoice.total) - previously_paid
                if amount > balance:
                    raise PreconditionFailedError(
                        f"Payment amount exceeds remaining balance of {balance}",
                        context={"invoice_id": str(invoice.id), "balance": str(balance)},
                    )

                balance_after = balance - amount
                target = InvoiceStatus.PAID if balance_after == 0 else InvoiceStatus.PARTIAL
                previous = invoice.status
                invoice.status = invoice_machine.ensure(previous, target)
                invoice.paid_amount = previously_paid + amount
                now = self.clock()
                if target == InvoiceStatus.PAID:
                    invoice.paid_at = now

                payment_no = await self.numbering.next(uow, DocumentType.PAYMENT, invoice.company_id)
                receipt_no = await self.numbering.next(uow, DocumentType.RECEIPT, invoice.company_id)
                payment = Payment(
                    company_id=invoice.company_id,
                    payment_no=payment_no,
                    amount=amount,
                    payment_method=method,
                    reference=reference,
                    notes=notes,
                    received_by=actor_id,
                    receipt=Receipt(
                        company_id=invoice.company_id,
                        receipt_no=receipt_no,
                        invoice_id=invoice.id,
                        amount=amount,
                        previously_paid=previously_paid,
                        balance_after=balance_after,
                        issued_by=actor_id,
                    ),
                )
                invoice.payments.append(payment)

                if target == InvoiceStatus.PAID:
                    request = await uow.service_requests.require(invoice.service_request_id, lock=True)
                    await uow.service_requests.set_status(request, ServiceRequestStatus.PAID)
                await uow.flush()
                log.info(
                    "invoice %s: payment %s of %s, %s -> %s",
                    invoice.invoice_no, payment_no, amount, previous.value, target.value,
                )
                return payment

        return await with_number_retry(attempt, DocumentType.PAYMENT, self.settings.NUMBER_COLLISION_RETRIES)

    async def mark_overdue(self, today: Optional[date] = None, company_id: Optional[UUID] = None) -> list[Invoice]:
        today = today or self.clock().date()
        async with self.uow_factory() as uow:
            invoices = list(await uow.invoices.overdue_candidates(today, company_id))
            for invoice in invoices:
                invoice.status = invoice_machine.guard("mark_overdue", invoice.status)
            await uow.flush()
        if invoices:
            log.info("marked %d invoice(s) overdue as of %s", len(invoices), today.isoformat())
        return invoices
