"""
Estimate Engine.

Owns the estimate lifecycle: draft, submission, manager decision, revision,
conversion to a customer quote and cancellation. Every operation runs in a
single unit of work, re-reads the estimate with a row lock before checking
its status, and appends one activity entry alongside its writes.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence
from uuid import UUID

from fieldops.app_logger import get_logger
from fieldops.core.config import Settings, settings as default_settings
from fieldops.db.base import utcnow
from fieldops.db.models import Estimate, EstimateItem, EstimateLaborItem, Quote, QuoteItem
from fieldops.enums import (
    DocumentType,
    EstimateItemType,
    EstimateStatus,
    LaborRateType,
    QuoteItemType,
    QuoteStatus,
    ServiceRequestStatus,
)
from fieldops.exceptions import PreconditionFailedError, ValidationError
from fieldops.repositories import UnitOfWorkFactory
from fieldops.schemas.estimates import (
    ConvertToQuoteIn,
    EstimateCreate,
    EstimateItemIn,
    EstimateLaborItemIn,
    EstimatePatch,
)

from . import cost_calculator as calc
from .numbering import NumberingService, with_number_retry
from .state_machines import estimate_machine

log = get_logger(__name__)

_CLOSED_REQUEST_STATUSES = {ServiceRequestStatus.CANCELLED, ServiceRequestStatus.CLOSED}
_DECIDED = (EstimateStatus.APPROVED, EstimateStatus.CONVERTED, EstimateStatus.REJECTED)


def _qty(value: Decimal) -> str:
    return format(Decimal(value).normalize(), "f")


def build_items(items: Iterable[EstimateItemIn]) -> list[EstimateItem]:
    rows = []
    for position, item in enumerate(items):
        line = calc.calculate_item(item.quantity, item.unit_cost, item.markup_type, item.markup_value)
        rows.append(
            EstimateItem(
                item_type=item.item_type,
                inventory_item_id=item.inventory_item_id,
                description=item.description,
                unit=item.unit,
                quantity=item.quantity,
                unit_cost=item.unit_cost,
                markup_type=item.markup_type,
                markup_value=item.markup_value,
                markup_amount=line.markup_amount,
                total_cost=line.total_cost,
                total_price=line.total_price,
                notes=item.notes,
                sort_order=position,
            )
        )
    return rows


def build_labor_items(labor_items: Iterable[EstimateLaborItemIn]) -> list[EstimateLaborItem]:
    rows = []
    for position, labor in enumerate(labor_items):
        line = calc.calculate_labor(
            labor.quantity,
            labor.hours,
            labor.hourly_rate,
            labor.markup_type,
            labor.markup_value,
            rate_type=labor.rate_type,
            days=labor.days,
            daily_rate=labor.daily_rate,
        )
        rows.append(
            EstimateLaborItem(
                description=labor.description,
                job_title=labor.job_title,
                rate_type=labor.rate_type,
                quantity=labor.quantity,
                hours=labor.hours,
                hourly_rate=labor.hourly_rate,
                days=labor.days,
                daily_rate=labor.daily_rate,
                markup_type=labor.markup_type,
                markup_value=labor.markup_value,
                markup_amount=line.markup_amount,
                total_cost=line.total_cost,
                total_price=line.total_price,
                notes=labor.notes,
                sort_order=position,
            )
        )
    return rows


def _line(row) -> calc.LineCost:
    return calc.LineCost(
        total_cost=calc.money(row.total_cost),
        markup_amount=calc.money(row.markup_amount),
        total_price=calc.money(row.total_price),
    )


def recalculate(estimate: Estimate) -> calc.EstimateTotals:
    """Refresh every aggregate cost field from the current lines and pricing parameters."""
    totals = calc.calculate_totals(
        [(item.item_type, _line(item)) for item in estimate.items],
        [_line(labor) for labor in estimate.labor_items],
        profit_margin_type=estimate.profit_margin_type,
        profit_margin_value=estimate.profit_margin_value,
        discount_type=estimate.discount_type,
        discount_value=estimate.discount_value,
        vat_rate=estimate.vat_rate,
    )
    for field, value in totals.as_dict().items():
        setattr(estimate, field, value)
    return totals


def apply_estimate_patch(estimate: Estimate, patch: EstimatePatch) -> list[str]:
    """
    Copy the scalar fields the caller actually sent onto the estimate.

    Child collections are not touched here; they go through the repository's
    replace methods. Returns the names of the fields that were applied.
    """
    sent = patch.model_fields_set
    applied: list[str] = []
    if "title" in sent:
        estimate.title = patch.title
        applied.append("title")
    if "description" in sent:
        estimate.description = patch.description
        applied.append("description")
    if "notes" in sent:
        estimate.notes = patch.notes
        applied.append("notes")
    if "profit_margin_type" in sent:
        estimate.profit_margin_type = patch.profit_margin_type
        applied.append("profit_margin_type")
    if "profit_margin_value" in sent:
        estimate.profit_margin_value = patch.profit_margin_value or Decimal("0")
        applied.append("profit_margin_value")
    if "discount_type" in sent:
        estimate.discount_type = patch.discount_type
        applied.append("discount_type")
    if "discount_value" in sent:
        estimate.discount_value = patch.discount_value or Decimal("0")
        applied.append("discount_value")
    if "vat_rate" in sent and patch.vat_rate is not None:
        estimate.vat_rate = patch.vat_rate
        applied.append("vat_rate")
    return applied


class EstimateEngine:
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

    # ------------------------------------------------------------------ reads

    async def get(self, estimate_id: UUID) -> Estimate:
        async with self.uow_factory() as uow:
            return await uow.estimates.require(estimate_id)

    async def list(self, **filters) -> tuple[Sequence[Estimate], int]:
        async with self.uow_factory() as uow:
            return await uow.estimates.list(**filters)

    async def versions(self, estimate_id: UUID) -> Sequence[Estimate]:
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id)
            return await uow.estimates.family(estimate.parent_estimate_id or estimate.id)

    async def stats(self, company_id: Optional[UUID] = None) -> dict:
        async with self.uow_factory() as uow:
            counts = await uow.estimates.status_counts(company_id)
            approved_value = await uow.estimates.total_value(
                [EstimateStatus.APPROVED, EstimateStatus.CONVERTED], company_id
            )
        by_status = {status: counts.get(status, 0) for status in EstimateStatus}
        decided = sum(by_status[s] for s in _DECIDED)
        won = by_status[EstimateStatus.APPROVED] + by_status[EstimateStatus.CONVERTED]
        rate = calc.money(Decimal(won) * 100 / Decimal(decided)) if decided else Decimal("0.00")
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "approved_value": calc.money(approved_value),
            "approval_rate": rate,
        }

    # ------------------------------------------------------------------ writes

    async def create(self, data: EstimateCreate, actor_id: Optional[UUID] = None) -> Estimate:
        async def attempt() -> Estimate:
            async with self.uow_factory() as uow:
                request = await uow.service_requests.require(data.service_request_id, lock=True)
                if request.status in _CLOSED_REQUEST_STATUSES:
                    raise PreconditionFailedError(
                        f"Service request {request.request_no} is {request.status.value}; "
                        f"no new estimates can be created",
                        context={"service_request_id": str(request.id)},
                    )
                if data.site_visit_id is not None:
                    visit = await uow.service_requests.get_site_visit(data.site_visit_id)
                    if visit.service_request_id != request.id:
                        raise ValidationError(
                            "Site visit does not belong to this service request", field="site_visit_id"
                        )

                number = await self.numbering.next(uow, DocumentType.ESTIMATE, request.company_id)
                estimate = Estimate(
                    company_id=request.company_id,
                    estimate_no=number,
                    service_request_id=request.id,
                    site_visit_id=data.site_visit_id,
                    title=data.title,
                    description=data.description,
                    notes=data.notes,
                    status=EstimateStatus.DRAFT,
                    version=1,
                    is_latest_version=True,
                    profit_margin_type=data.profit_margin_type,
                    profit_margin_value=data.profit_margin_value,
                    discount_type=data.discount_type,
                    discount_value=data.discount_value,
                    vat_rate=data.vat_rate if data.vat_rate is not None else self.settings.DEFAULT_VAT_RATE,
                    created_by=actor_id,
                    items=build_items(data.items),
                    labor_items=build_labor_items(data.labor_items),
                    activities=[],
                )
                recalculate(estimate)
                uow.estimates.add_activity(
                    estimate, "CREATED", f"Estimate {number} created", actor_id,
                    {"total": str(estimate.total)},
                )
                await uow.estimates.add(estimate)
                await uow.service_requests.set_status(request, ServiceRequestStatus.ESTIMATION_IN_PROGRESS)
                log.info("estimate %s created for %s (total %s)", number, request.request_no, estimate.total)
                return estimate

        return await with_number_retry(attempt, DocumentType.ESTIMATE, self.settings.NUMBER_COLLISION_RETRIES)

    async def update(self, estimate_id: UUID, patch: EstimatePatch, actor_id: Optional[UUID] = None) -> Estimate:
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id, lock=True)
            estimate_machine.guard("update", estimate.status)
            _require_latest(estimate)

            changed = apply_estimate_patch(estimate, patch)
            if patch.items is not None:
                await uow.estimates.replace_items(estimate, build_items(patch.items))
                changed.append("items")
            if patch.labor_items is not None:
                await uow.estimates.replace_labor_items(estimate, build_labor_items(patch.labor_items))
                changed.append("labor_items")
            recalculate(estimate)

            uow.estimates.add_activity(
                estimate, "UPDATED", f"Estimate {estimate.estimate_no} updated", actor_id,
                {"fields": changed, "total": str(estimate.total)},
            )
            await uow.flush()
            return estimate

    async def submit_for_approval(
        self, estimate_id: UUID, notes: Optional[str] = None, actor_id: Optional[UUID] = None
    ) -> Estimate:
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id, lock=True)
            previous = estimate.status
            target = estimate_machine.guard("submit", previous)
            _require_latest(estimate)
            if not estimate.items and not estimate.labor_items:
                raise PreconditionFailedError(
                    f"Estimate {estimate.estimate_no} has no items or labor to submit"
                )
            request = await uow.service_requests.require(estimate.service_request_id, lock=True)

            estimate.status = target
            estimate.submitted_by = actor_id
            estimate.submitted_at = self.clock()
            uow.estimates.add_activity(
                estimate, "SUBMITTED", f"Estimate {estimate.estimate_no} submitted for manager approval",
                actor_id, {"notes": notes} if notes else None,
            )
            await uow.service_requests.set_status(request, ServiceRequestStatus.ESTIMATE_PENDING_APPROVAL)
            await uow.flush()
            log.info("estimate %s: %s -> %s", estimate.estimate_no, previous.value, target.value)
            return estimate

    async def approve(self, estimate_id: UUID, notes: Optional[str] = None, actor_id: Optional[UUID] = None) -> Estimate:
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id, lock=True)
            target = estimate_machine.guard("approve", estimate.status)
            _require_latest(estimate)
            request = await uow.service_requests.require(estimate.service_request_id, lock=True)

            estimate.status = target
            estimate.approved_by = actor_id
            estimate.approved_at = self.clock()
            estimate.approval_notes = notes
            uow.estimates.add_activity(
                estimate, "APPROVED", f"Estimate {estimate.estimate_no} approved", actor_id,
                {"notes": notes} if notes else None,
            )
            await uow.service_requests.set_status(request, ServiceRequestStatus.ESTIMATE_APPROVED)
            await uow.flush()
            log.info("estimate %s approved", estimate.estimate_no)
            return estimate

    async def reject(self, estimate_id: UUID, reason: str, actor_id: Optional[UUID] = None) -> Estimate:
        reason = _require_reason(reason)
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id, lock=True)
            target = estimate_machine.guard("reject", estimate.status)

            estimate.status = target
            estimate.rejected_by = actor_id
            estimate.rejected_at = self.clock()
            estimate.rejection_reason = reason
            uow.estimates.add_activity(
                estimate, "REJECTED", f"Estimate {estimate.estimate_no} rejected: {reason}", actor_id,
                {"reason": reason},
            )
            await uow.flush()
            log.info("estimate %s rejected", estimate.estimate_no)
            return estimate

    async def request_revision(
        self,
        estimate_id: UUID,
        reason: str,
        notes: Optional[str] = None,
        actor_id: Optional[UUID] = None,
    ) -> Estimate:
        reason = _require_reason(reason)
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id, lock=True)
            target = estimate_machine.guard("request_revision", estimate.status)

            estimate.status = target
            estimate.revision_reason = reason
            uow.estimates.add_activity(
                estimate, "REVISION_REQUESTED",
                f"Revision requested for estimate {estimate.estimate_no}: {reason}", actor_id,
                {"reason": reason, "notes": notes},
            )
            await uow.flush()
            log.info("estimate %s sent back for revision", estimate.estimate_no)
            return estimate

    async def convert_to_quote(
        self, estimate_id: UUID, data: ConvertToQuoteIn, actor_id: Optional[UUID] = None
    ) -> Quote:
        """
        Turn an APPROVED estimate into a DRAFT quote.

        Item lines keep their quantity at a selling price of total_price /
        quantity; every labor entry becomes one LABOR line at its total
        price. The customer discount applies to the quote subtotal and tax is
        charged at the estimate's VAT rate. Quote creation, the estimate's
        move to CONVERTED and the service request update commit together.
        """
        today = self.clock().date()
        valid_until = data.valid_until or today + timedelta(days=self.settings.QUOTE_VALIDITY_DAYS)
        if valid_until < today:
            raise ValidationError("valid_until cannot be in the past", field="valid_until")
        adjustments = data.pricing_adjustments

        async def attempt() -> Quote:
            async with self.uow_factory() as uow:
                estimate = await uow.estimates.require(estimate_id, lock=True)
                target = estimate_machine.guard("convert", estimate.status)
                _require_latest(estimate)
                request = await uow.service_requests.require(estimate.service_request_id, lock=True)

                lines = quote_lines_from_estimate(estimate)
                totals = calc.calculate_quote_totals(
                    [line.total for line in lines],
                    adjustments.customer_discount_type if adjustments else None,
                    adjustments.customer_discount_value if adjustments else None,
                    estimate.vat_rate,
                )
                number = await self.numbering.next(uow, DocumentType.QUOTE, estimate.company_id)
                quote = Quote(
                    company_id=estimate.company_id,
                    quote_no=number,
                    service_request_id=estimate.service_request_id,
                    estimate_id=estimate.id,
                    title=data.title or estimate.title,
                    description=data.description or estimate.description,
                    terms_and_conditions=data.terms_and_conditions,
                    notes=data.notes,
                    status=QuoteStatus.DRAFT,
                    valid_until=valid_until,
                    discount_type=adjustments.customer_discount_type if adjustments else None,
                    discount_value=adjustments.customer_discount_value if adjustments else Decimal("0"),
                    tax_rate=estimate.vat_rate,
                    subtotal=totals.subtotal,
                    discount_amount=totals.discount_amount,
                    tax_amount=totals.tax_amount,
                    total=totals.total,
                    created_by=actor_id,
                    items=lines,
                    activities=[],
                )
                uow.quotes.add_activity(
                    quote, "CREATED_FROM_ESTIMATE",
                    f"Quote {number} created from estimate {estimate.estimate_no}", actor_id,
                    {"estimate_id": str(estimate.id), "estimate_no": estimate.estimate_no},
                )
                await uow.quotes.add(quote)

                estimate.status = target
                estimate.converted_to_quote_id = quote.id
                estimate.converted_at = self.clock()
                uow.estimates.add_activity(
                    estimate, "CONVERTED_TO_QUOTE",
                    f"Estimate {estimate.estimate_no} converted to quote {number}", actor_id,
                    {"quote_id": str(quote.id), "quote_no": number},
                )
                await uow.service_requests.set_status(request, ServiceRequestStatus.QUOTATION_IN_PROGRESS)
                await uow.flush()
                log.info("estimate %s converted to quote %s", estimate.estimate_no, number)
                return quote

        return await with_number_retry(attempt, DocumentType.QUOTE, self.settings.NUMBER_COLLISION_RETRIES)

    async def cancel(self, estimate_id: UUID, reason: Optional[str] = None, actor_id: Optional[UUID] = None) -> Estimate:
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id, lock=True)
            target = estimate_machine.guard("cancel", estimate.status)

            estimate.status = target
            estimate.cancelled_at = self.clock()
            estimate.cancellation_reason = reason
            uow.estimates.add_activity(
                estimate, "CANCELLED", f"Estimate {estimate.estimate_no} cancelled", actor_id,
                {"reason": reason} if reason else None,
            )
            await uow.flush()
            log.info("estimate %s cancelled", estimate.estimate_no)
            return estimate

    async def delete(self, estimate_id: UUID) -> None:
        async with self.uow_factory() as uow:
            estimate = await uow.estimates.require(estimate_id, lock=True)
            estimate_machine.guard("delete", estimate.status)
            await uow.estimates.delete(estimate)
            log.info("estimate %s deleted", estimate.estimate_no)

    async def create_revision(
        self, estimate_id: UUID, notes: Optional[str] = None, actor_id: Optional[UUID] = None
    ) -> Estimate:
        """
        Copy a REJECTED or REVISION_REQUESTED estimate into a new DRAFT version.

        Revisions hang off the family root and are numbered ``{root}-V{n}``;
        the new version becomes the only one flagged latest.
        """
        async def attempt() -> Estimate:
            async with self.uow_factory() as uow:
                source = await uow.estimates.require(estimate_id, lock=True)
                estimate_machine.guard("create_revision", source.status)
                _require_latest(source)
                root_id = source.parent_estimate_id or source.id
                root = source if root_id == source.id else await uow.estimates.require(root_id)
                family = await uow.estimates.family(root_id)
                version = max(member.version for member in family) + 1

                revision = Estimate(
                    company_id=source.company_id,
                    estimate_no=f"{root.estimate_no}-V{version}",
                    service_request_id=source.service_request_id,
                    site_visit_id=source.site_visit_id,
                    title=source.title,
                    description=source.description,
                    notes=notes if notes is not None else source.notes,
                    status=EstimateStatus.DRAFT,
                    version=version,
                    is_latest_version=True,
                    parent_estimate_id=root_id,
                    profit_margin_type=source.profit_margin_type,
                    profit_margin_value=source.profit_margin_value,
                    discount_type=source.discount_type,
                    discount_value=source.discount_value,
                    vat_rate=source.vat_rate,
                    created_by=actor_id,
                    items=[_copy_item(item) for item in source.items],
                    labor_items=[_copy_labor(labor) for labor in source.labor_items],
                    activities=[],
                )
                recalculate(revision)
                for member in family:
                    member.is_latest_version = False
                await uow.estimates.add(revision)

                uow.estimates.add_activity(
                    revision, "REVISION_CREATED",
                    f"Version {version} created from {source.estimate_no}", actor_id,
                    {"previous_estimate_id": str(source.id)},
                )
                uow.estimates.add_activity(
                    source, "SUPERSEDED",
                    f"Superseded by {revision.estimate_no}", actor_id,
                    {"revision_id": str(revision.id)},
                )
                await uow.flush()
                log.info("estimate %s revised as %s", source.estimate_no, revision.estimate_no)
                return revision

        return await with_number_retry(attempt, DocumentType.ESTIMATE, self.settings.NUMBER_COLLISION_RETRIES)


def _require_reason(reason: Optional[str]) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("A reason is required", field="reason")
    return reason.strip()


def _require_latest(estimate: Estimate) -> None:
    if not estimate.is_latest_version:
        raise PreconditionFailedError(
            f"Estimate {estimate.estimate_no} has been superseded; work on the latest version",
            context={"estimate_id": str(estimate.id), "version": estimate.version},
        )


def quote_lines_from_estimate(estimate: Estimate) -> list[QuoteItem]:
    lines: list[QuoteItem] = []
    for item in estimate.items:
        unit_price = calc.unit_price_for(item.total_price, item.quantity)
        lines.append(
            QuoteItem(
                item_type=_QUOTE_TYPE.get(item.item_type, QuoteItemType.OTHER),
                description=item.description,
                unit=item.unit,
                quantity=item.quantity,
                unit_price=unit_price,
                total=calc.quote_line_total(item.quantity, unit_price),
                sort_order=len(lines),
            )
        )
    for labor in estimate.labor_items:
        if labor.rate_type == LaborRateType.DAILY:
            effort = f"{_qty(labor.quantity)} worker(s) x {_qty(labor.days)} days"
        else:
            effort = f"{_qty(labor.quantity)} worker(s) x {_qty(labor.hours)} hours"
        lines.append(
            QuoteItem(
                item_type=QuoteItemType.LABOR,
                description=f"{labor.description} ({effort})",
                unit="service",
                quantity=Decimal("1"),
                unit_price=calc.money(labor.total_price),
                total=calc.money(labor.total_price),
                sort_order=len(lines),
            )
        )
    return lines


_QUOTE_TYPE = {
    EstimateItemType.MATERIAL: QuoteItemType.MATERIAL,
    EstimateItemType.EQUIPMENT: QuoteItemType.EQUIPMENT,
}


def _copy_item(item: EstimateItem) -> EstimateItem:
    return EstimateItem(
        item_type=item.item_type,
        inventory_item_id=item.inventory_item_id,
        description=item.description,
        unit=item.unit,
        quantity=item.quantity,
        unit_cost=item.unit_cost,
        markup_type=item.markup_type,
        markup_value=item.markup_value,
        markup_amount=item.markup_amount,
        total_cost=item.total_cost,
        total_price=item.total_price,
        notes=item.notes,
        sort_order=item.sort_order,
    )


def _copy_labor(labor: EstimateLaborItem) -> EstimateLaborItem:
    return EstimateLaborItem(
        description=labor.description,
        job_title=labor.job_title,
        rate_type=labor.rate_type,
        quantity=labor.quantity,
        hours=labor.hours,
        hourly_rate=labor.hourly_rate,
        days=labor.days,
        daily_rate=labor.daily_rate,
        markup_type=labor.markup_type,
        markup_value=labor.markup_value,
        markup_amount=labor.markup_amount,
        total_cost=labor.total_cost,
        total_price=labor.total_price,
        notes=labor.notes,
        sort_order=labor.sort_order,
    )
