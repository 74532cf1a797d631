"""
Quote Engine.

Covers the customer-facing side of a quote: direct creation, sending,
viewing, the customer's accept/reject response and cancellation. Quotes
produced from estimates come from ``EstimateEngine.convert_to_quote``;
accepted quotes are consumed by ``WorkOrderEngine.create_from_quote``.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from fieldops.app_logger import get_logger
from fieldops.core.config import Settings, settings as default_settings
from fieldops.db.base import utcnow
from fieldops.db.models import Quote, QuoteItem
from fieldops.enums import DocumentType, QuoteStatus, ServiceRequestStatus
from fieldops.exceptions import PreconditionFailedError, ValidationError
from fieldops.repositories import UnitOfWorkFactory
from fieldops.schemas.quotes import QuoteCreate

from . import cost_calculator as calc
from .numbering import NumberingService, with_number_retry
from .state_machines import quote_machine

log = get_logger(__name__)


class QuoteEngine:
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

    async def get(self, quote_id: UUID) -> Quote:
        async with self.uow_factory() as uow:
            return await uow.quotes.require(quote_id)

    async def list(self, **filters):
        async with self.uow_factory() as uow:
            return await uow.quotes.list(**filters)

    async def create(self, data: QuoteCreate, actor_id: Optional[UUID] = None) -> Quote:
        today = self.clock().date()
        valid_until = data.valid_until or today + timedelta(days=self.settings.QUOTE_VALIDITY_DAYS)
        if valid_until < today:
            raise ValidationError("valid_until cannot be in the past", field="valid_until")
        tax_rate = data.tax_rate if data.tax_rate is not None else self.settings.DEFAULT_VAT_RATE

        async def attempt() -> Quote:
            async with self.uow_factory() as uow:
                request = await uow.service_requests.require(data.service_request_id, lock=True)
                lines = [
                    QuoteItem(
                        item_type=line.item_type,
                        description=line.description,
                        unit=line.unit,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        total=calc.quote_line_total(line.quantity, line.unit_price),
                        sort_order=position,
                    )
                    for position, line in enumerate(data.items)
                ]
                totals = calc.calculate_quote_totals(
                    [line.total for line in lines], data.discount_type, data.discount_value, tax_rate
                )
                number = await self.numbering.next(uow, DocumentType.QUOTE, request.company_id)
                quote = Quote(
                    company_id=request.company_id,
                    quote_no=number,
                    service_request_id=request.id,
                    title=data.title,
                    description=data.description,
                    terms_and_conditions=data.terms_and_conditions,
                    notes=data.notes,
                    status=QuoteStatus.DRAFT,
                    valid_until=valid_until,
                    discount_type=data.discount_type,
                    discount_value=data.discount_value,
                    tax_rate=tax_rate,
                    subtotal=totals.subtotal,
                    discount_amount=totals.discount_amount,
                    tax_amount=totals.tax_amount,
                    total=totals.total,
                    created_by=actor_id,
                    items=lines,
                    activities=[],
                )
                uow.quotes.add_activity(quote, "CREATED", f"Quote {number} created", actor_id)
                await uow.quotes.add(quote)
                await uow.service_requests.set_status(request, ServiceRequestStatus.QUOTATION_IN_PROGRESS)
                log.info("quote %s created for %s (total %s)", number, request.request_no, quote.total)
                return quote

        return await with_number_retry(attempt, DocumentType.QUOTE, self.settings.NUMBER_COLLISION_RETRIES)

    async def send(self, quote_id: UUID, actor_id: Optional[UUID] = None) -> Quote:
        async with self.uow_factory() as uow:
            quote = await uow.quotes.require(quote_id, lock=True)
            target = quote_machine.guard("send", quote.status)
            quote.status = target
            quote.sent_at = self.clock()
            uow.quotes.add_activity(quote, "SENT", f"Quote {quote.quote_no} sent to customer", actor_id)
            await uow.flush()
            log.info("quote %s sent", quote.quote_no)
            return quote

    async def mark_viewed(self, quote_id: UUID) -> Quote:
        async with self.uow_factory() as uow:
            quote = await uow.quotes.require(quote_id, lock=True)
            if quote.status == QuoteStatus.VIEWED:
                return quote
            target = quote_machine.guard("view", quote.status)
            quote.status = target
            quote.viewed_at = self.clock()
            uow.quotes.add_activity(quote, "VIEWED", f"Quote {quote.quote_no} viewed by customer")
            await uow.flush()
            return quote

    async def record_customer_response(
        self,
        quote_id: UUID,
        accepted: bool,
        notes: Optional[str] = None,
        actor_id: Optional[UUID] = None,
    ) -> Quote:
        async with self.uow_factory() as uow:
            quote = await uow.quotes.require(quote_id, lock=True)
            now = self.clock()
            if accepted:
                target = quote_machine.guard("accept", quote.status)
                if quote.valid_until < now.date():
                    raise PreconditionFailedError(
                        f"Quote {quote.quote_no} expired on {quote.valid_until.isoformat()}",
                        context={"valid_until": quote.valid_until.isoformat()},
                    )
            else:
                target = quote_machine.guard("reject", quote.status)

            previous = quote.status
            quote.status = target
            quote.responded_at = now
            quote.customer_notes = notes
            action = "ACCEPTED" if accepted else "REJECTED"
            uow.quotes.add_activity(
                quote, action, f"Customer {action.lower()} quote {quote.quote_no}", actor_id,
                {"notes": notes} if notes else None,
            )
            await uow.flush()
            log.info("quote %s: %s -> %s", quote.quote_no, previous.value, target.value)
            return quote

    async def cancel(self, quote_id: UUID, reason: Optional[str] = None, actor_id: Optional[UUID] = None) -> Quote:
        async with self.uow_factory() as uow:
            quote = await uow.quotes.require(quote_id, lock=True)
            target = quote_machine.guard("cancel", quote.status)
            quote.status = target
            uow.quotes.add_activity(
                quote, "CANCELLED", f"Quote {quote.quote_no} cancelled", actor_id,
                {"reason": reason} if reason else None,
            )
            await uow.flush()
            log.info("quote %s cancelled", quote.quote_no)
            return quote

    async def expire_overdue(self, today: Optional[date] = None, company_id: Optional[UUID] = None) -> list[Quote]:
        """Move SENT/VIEWED quotes whose validity ended before ``today`` to EXPIRED."""
        today = today or self.clock().date()
        async with self.uow_factory() as uow:
            quotes = list(await uow.quotes.expiry_candidates(today, company_id))
            for quote in quotes:
                quote.status = quote_machine.guard("expire", quote.status)
                uow.quotes.add_activity(
                    quote, "EXPIRED", f"Quote {quote.quote_no} expired on {quote.valid_until.isoformat()}"
                )
            await uow.flush()
        if quotes:
            log.info("expired %d quote(s) as of %s", len(quotes), today.isoformat())
        return quotes
