"""
Work Order Engine.

Tracks a field job from creation through team assignment, scheduling,
travel, on-site work, labor time entries, checklist and material capture to
completion (or hold, follow-up and cancellation). Every mutating operation
appends exactly one ``WorkOrderActivity`` row in the same transaction, and
any change to items or labor recomputes the running cost totals.
"""
from __future__ import annotations

from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from fieldops.app_logger import get_logger
from fieldops.core.config import Settings, settings as default_settings
from fieldops.db.base import utcnow
from fieldops.db.models import (
    ServiceRequest,
    WorkOrder,
    WorkOrderChecklist,
    WorkOrderItem,
    WorkOrderLabor,
    WorkOrderPhoto,
    WorkOrderTeamMember,
)
from fieldops.enums import (
    DocumentType,
    EstimateItemType,
    QuoteItemType,
    ServiceRequestStatus,
    WorkOrderItemType,
    WorkOrderStatus,
)
from fieldops.exceptions import NotFoundError, PreconditionFailedError
from fieldops.repositories import UnitOfWork, UnitOfWorkFactory
from fieldops.schemas.work_orders import (
    AddItemIn,
    ChecklistItemIn,
    ChecklistUpdateIn,
    CompleteIn,
    FromEstimateIn,
    FromQuoteIn,
    PhotoIn,
    ScheduleIn,
    TeamMemberIn,
    WorkOrderCreate,
    WorkOrderItemIn,
    WorkOrderPatch,
)

from . import cost_calculator as calc
from .numbering import NumberingService, with_number_retry
from .state_machines import estimate_machine, quote_machine, work_order_machine

log = get_logger(__name__)

_CLOSED_REQUEST_STATUSES = {ServiceRequestStatus.CANCELLED, ServiceRequestStatus.CLOSED}

_FROM_QUOTE_TYPE = {
    QuoteItemType.MATERIAL: WorkOrderItemType.MATERIAL,
    QuoteItemType.EQUIPMENT: WorkOrderItemType.EQUIPMENT,
    QuoteItemType.LABOR: WorkOrderItemType.LABOR,
}
_FROM_ESTIMATE_TYPE = {
    EstimateItemType.MATERIAL: WorkOrderItemType.MATERIAL,
    EstimateItemType.EQUIPMENT: WorkOrderItemType.EQUIPMENT,
}


def _item(data: WorkOrderItemIn, **extra) -> WorkOrderItem:
    return WorkOrderItem(
        item_type=data.item_type,
        inventory_item_id=data.inventory_item_id,
        description=data.description,
        unit=data.unit,
        quantity=data.quantity,
        unit_cost=data.unit_cost,
        total_cost=calc.money(data.quantity * data.unit_cost),
        notes=data.notes,
        **extra,
    )


def _team(members: Iterable[TeamMemberIn]) -> list[WorkOrderTeamMember]:
    seen = {}
    for member in members:
        # one row per employee; the last role given wins
        seen[member.employee_id] = member.role
    return [WorkOrderTeamMember(employee_id=employee_id, role=role) for employee_id, role in seen.items()]


def _checklist(entries: Iterable[ChecklistItemIn]) -> list[WorkOrderChecklist]:
    return [
        WorkOrderChecklist(
            title=entry.title,
            description=entry.description,
            is_required=entry.is_required,
            is_completed=False,
            sort_order=position,
        )
        for position, entry in enumerate(entries)
    ]


def recompute_costs(work_order: WorkOrder, default_hourly_rate) -> calc.WorkOrderCosts:
    costs = calc.calculate_work_order_costs(
        [item.total_cost for item in work_order.items],
        [(entry.total_minutes, entry.hourly_rate) for entry in work_order.labor],
        work_order.additional_cost,
        default_hourly_rate,
    )
    work_order.material_cost = costs.material_cost
    work_order.labor_cost = costs.labor_cost
    work_order.additional_cost = costs.additional_cost
    work_order.total_cost = costs.total_cost
    return costs


def apply_work_order_patch(work_order: WorkOrder, patch: WorkOrderPatch) -> list[str]:
    sent = patch.model_fields_set
    applied: list[str] = []
    if "title" in sent and patch.title is not None:
        work_order.title = patch.title
        applied.append("title")
    if "description" in sent:
        work_order.description = patch.description
        applied.append("description")
    if "instructions" in sent:
        work_order.instructions = patch.instructions
        applied.append("instructions")
    if "priority" in sent and patch.priority is not None:
        work_order.priority = patch.priority
        applied.append("priority")
    if "scheduled_date" in sent:
        work_order.scheduled_date = patch.scheduled_date
        applied.append("scheduled_date")
    if "scheduled_time" in sent:
        work_order.scheduled_time = patch.scheduled_time
        applied.append("scheduled_time")
    if "estimated_duration" in sent:
        work_order.estimated_duration = patch.estimated_duration
        applied.append("estimated_duration")
    return applied


class WorkOrderEngine:
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

    async def get(self, work_order_id: UUID) -> WorkOrder:
        async with self.uow_factory() as uow:
            return await uow.work_orders.require(work_order_id)

    async def list(self, **filters) -> tuple[Sequence[WorkOrder], int]:
        async with self.uow_factory() as uow:
            return await uow.work_orders.list(**filters)

    async def stats(self, company_id: Optional[UUID] = None) -> dict:
        start_of_day = datetime.combine(self.clock().date(), time.min, tzinfo=timezone.utc)
        async with self.uow_factory() as uow:
            counts = await uow.work_orders.status_counts(company_id)
            completed_today = await uow.work_orders.completed_since(start_of_day, company_id)
        by_status = {status: counts.get(status, 0) for status in WorkOrderStatus}
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "completed_today": completed_today,
            "in_progress": by_status[WorkOrderStatus.IN_PROGRESS],
        }

    # ------------------------------------------------------------------ creation

    async def _open_request(self, uow: UnitOfWork, service_request_id: UUID) -> ServiceRequest:
        request = await uow.service_requests.require(service_request_id, lock=True)
        if request.status in _CLOSED_REQUEST_STATUSES:
            raise PreconditionFailedError(
                f"Service request {request.request_no} is {request.status.value}; "
                f"no work order can be created",
                context={"service_request_id": str(request.id)},
            )
        return request

    async def _insert(
        self,
        uow: UnitOfWork,
        request: ServiceRequest,
        work_order: WorkOrder,
        description: str,
        actor_id: Optional[UUID],
    ) -> WorkOrder:
        work_order.work_order_no = await self.numbering.next(uow, DocumentType.WORK_ORDER, request.company_id)
        recompute_costs(work_order, self.settings.DEFAULT_HOURLY_RATE)
        uow.work_orders.add_activity(
            work_order, "CREATED", f"Work order {work_order.work_order_no} {description}", actor_id
        )
        await uow.work_orders.add(work_order)
        await uow.service_requests.set_status(request, ServiceRequestStatus.SCHEDULED)
        log.info("work order %s created for %s", work_order.work_order_no, request.request_no)
        return work_order

    @staticmethod
    def _new(request: ServiceRequest, data, actor_id: Optional[UUID], **fields) -> WorkOrder:
        return WorkOrder(
            company_id=request.company_id,
            service_request_id=request.id,
            status=WorkOrderStatus.PENDING,
            priority=data.priority,
            scheduled_date=data.scheduled_date,
            scheduled_time=data.scheduled_time,
            estimated_duration=data.estimated_duration,
            instructions=data.instructions,
            additional_cost=Decimal("0"),
            created_by=actor_id,
            team=_team(data.team),
            checklists=_checklist(data.checklist),
            labor=[],
            photos=[],
            activities=[],
            **fields,
        )

    async def create(self, data: WorkOrderCreate, actor_id: Optional[UUID] = None) -> WorkOrder:
        async def attempt() -> WorkOrder:
            async with self.uow_factory() as uow:
                request = await self._open_request(uow, data.service_request_id)
                work_order = self._new(
                    request, data, actor_id,
                    title=data.title,
                    description=data.description,
                    items=[_item(item, added_by=actor_id) for item in data.items],
                )
                return await self._insert(uow, request, work_order, "created", actor_id)

        return await with_number_retry(attempt, DocumentType.WORK_ORDER, self.settings.NUMBER_COLLISION_RETRIES)

    async def create_from_quote(self, data: FromQuoteIn, actor_id: Optional[UUID] = None) -> WorkOrder:
        async def attempt() -> WorkOrder:
            async with self.uow_factory() as uow:
                quote = await uow.quotes.require(data.quote_id, lock=True)
                target = quote_machine.guard("convert", quote.status)
                request = await self._open_request(uow, quote.service_request_id)

                items = []
                for line in quote.items:
                    if line.item_type == QuoteItemType.LABOR:
                        quantity, unit_cost = Decimal("1"), calc.money(line.total)
                    else:
                        quantity, unit_cost = line.quantity, line.unit_price
                    items.append(
                        WorkOrderItem(
                            item_type=_FROM_QUOTE_TYPE.get(line.item_type, WorkOrderItemType.OTHER),
                            description=line.description,
                            unit=line.unit,
                            quantity=quantity,
                            unit_cost=unit_cost,
                            total_cost=calc.money(quantity * unit_cost),
                            is_from_estimate=False,
                            is_additional=False,
                            added_by=actor_id,
                        )
                    )
                work_order = self._new(
                    request, data, actor_id,
                    title=data.title or quote.title or request.title,
                    description=quote.description,
                    quote_id=quote.id,
                    estimate_id=quote.estimate_id,
                    items=items,
                )
                await self._insert(uow, request, work_order, f"created from quote {quote.quote_no}", actor_id)

                quote.status = target
                quote.converted_to_work_order_id = work_order.id
                uow.quotes.add_activity(
                    quote, "CONVERTED_TO_WORK_ORDER",
                    f"Quote {quote.quote_no} converted to work order {work_order.work_order_no}", actor_id,
                    {"work_order_id": str(work_order.id), "work_order_no": work_order.work_order_no},
                )
                await uow.flush()
                return work_order

        return await with_number_retry(attempt, DocumentType.WORK_ORDER, self.settings.NUMBER_COLLISION_RETRIES)

    async def create_from_estimate(self, data: FromEstimateIn, actor_id: Optional[UUID] = None) -> WorkOrder:
        async def attempt() -> WorkOrder:
            async with self.uow_factory() as uow:
                estimate = await uow.estimates.require(data.estimate_id, lock=True)
                estimate_machine.guard("seed_work_order", estimate.status)
                request = await self._open_request(uow, estimate.service_request_id)

                items = [
                    WorkOrderItem(
                        item_type=_FROM_ESTIMATE_TYPE.get(item.item_type, WorkOrderItemType.OTHER),
                        inventory_item_id=item.inventory_item_id,
                        description=item.description,
                        unit=item.unit,
                        quantity=item.quantity,
                        unit_cost=item.unit_cost,
                        total_cost=calc.money(item.total_cost),
                        is_from_estimate=True,
                        is_additional=False,
                        added_by=actor_id,
                    )
                    for item in estimate.items
                ]
                items.extend(
                    WorkOrderItem(
                        item_type=WorkOrderItemType.LABOR,
                        description=labor.description,
                        unit="service",
                        quantity=Decimal("1"),
                        unit_cost=calc.money(labor.total_cost),
                        total_cost=calc.money(labor.total_cost),
                        is_from_estimate=True,
                        is_additional=False,
                        added_by=actor_id,
                    )
                    for labor in estimate.labor_items
                )
                work_order = self._new(
                    request, data, actor_id,
                    title=data.title or estimate.title or request.title,
                    description=estimate.description,
                    estimate_id=estimate.id,
                    items=items,
                )
                await self._insert(
                    uow, request, work_order, f"created from estimate {estimate.estimate_no}", actor_id
                )
                uow.estimates.add_activity(
                    estimate, "WORK_ORDER_CREATED",
                    f"Work order {work_order.work_order_no} created from estimate {estimate.estimate_no}",
                    actor_id,
                    {"work_order_id": str(work_order.id)},
                )
                await uow.flush()
                return work_order

        return await with_number_retry(attempt, DocumentType.WORK_ORDER, self.settings.NUMBER_COLLISION_RETRIES)

    # ------------------------------------------------------------------ office operations

    async def update(self, work_order_id: UUID, patch: WorkOrderPatch, actor_id: Optional[UUID] = None) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("update", work_order.status)
            changed = apply_work_order_patch(work_order, patch)
            uow.work_orders.add_activity(
                work_order, "UPDATED", f"Work order {work_order.work_order_no} updated", actor_id,
                {"fields": changed},
            )
            await uow.flush()
            return work_order

    async def assign_team(
        self, work_order_id: UUID, members: Sequence[TeamMemberIn], actor_id: Optional[UUID] = None
    ) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("assign_team", work_order.status)

            await uow.work_orders.replace_team(work_order, _team(members))
            previous = work_order.status
            if previous == WorkOrderStatus.PENDING:
                work_order.status = work_order_machine.ensure(previous, WorkOrderStatus.SCHEDULED)
                log.info("work order %s: %s -> %s", work_order.work_order_no, previous.value, work_order.status.value)

            uow.work_orders.add_activity(
                work_order, "TEAM_ASSIGNED", f"Team assigned ({len(work_order.team)} members)", actor_id,
                {"employee_ids": [str(m.employee_id) for m in work_order.team]},
            )
            await uow.flush()
            return work_order

    async def _set_schedule(
        self, operation: str, action: str, work_order_id: UUID, data: ScheduleIn, actor_id: Optional[UUID]
    ) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            previous = work_order.status
            target = work_order_machine.guard(operation, previous)

            old_date = work_order.scheduled_date
            work_order.scheduled_date = data.scheduled_date
            if data.scheduled_time is not None:
                work_order.scheduled_time = data.scheduled_time
            if data.estimated_duration is not None:
                work_order.estimated_duration = data.estimated_duration
            work_order.status = target

            when = data.scheduled_date.isoformat()
            if data.scheduled_time:
                when = f"{when} {data.scheduled_time}"
            metadata = {"scheduled_date": data.scheduled_date.isoformat()}
            if old_date is not None:
                metadata["previous_date"] = old_date.isoformat()
            if data.reason:
                metadata["reason"] = data.reason
            uow.work_orders.add_activity(
                work_order, action, f"Work order {action.lower()} for {when}", actor_id, metadata
            )
            await uow.flush()
            log.info("work order %s: %s -> %s (%s)", work_order.work_order_no, previous.value, target.value, when)
            return work_order

    async def schedule(self, work_order_id: UUID, data: ScheduleIn, actor_id: Optional[UUID] = None) -> WorkOrder:
        return await self._set_schedule("schedule", "SCHEDULED", work_order_id, data, actor_id)

    async def reschedule(self, work_order_id: UUID, data: ScheduleIn, actor_id: Optional[UUID] = None) -> WorkOrder:
        return await self._set_schedule("reschedule", "RESCHEDULED", work_order_id, data, actor_id)

    async def confirm(self, work_order_id: UUID, actor_id: Optional[UUID] = None) -> WorkOrder:
        return await self._transition(work_order_id, "confirm", "CONFIRMED", "Schedule confirmed with customer", actor_id)

    async def _transition(
        self,
        work_order_id: UUID,
        operation: str,
        action: str,
        description: str,
        actor_id: Optional[UUID],
        metadata: Optional[dict] = None,
        **fields,
    ) -> WorkOrder:
        """Plain status move: guard, set target and any extra fields, log one activity."""
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            previous = work_order.status
            target = work_order_machine.guard(operation, previous)
            work_order.status = target
            for name, value in fields.items():
                setattr(work_order, name, value)
            uow.work_orders.add_activity(work_order, action, description, actor_id, metadata)
            await uow.flush()
            log.info("work order %s: %s -> %s", work_order.work_order_no, previous.value, target.value)
            return work_order

    # ------------------------------------------------------------------ field operations

    async def _insert_open_entry(self, uow: UnitOfWork, work_order: WorkOrder, entry: WorkOrderLabor) -> None:
        # a failed flush expires every instance in the session; read ids first
        context = {"work_order_id": str(work_order.id), "employee_id": str(entry.employee_id)}
        work_order.labor.append(entry)
        try:
            await uow.flush()
        except IntegrityError as exc:
            raise PreconditionFailedError("Employee is already clocked in", context=context) from exc

    async def start_en_route(
        self,
        work_order_id: UUID,
        employee_id: UUID,
        hourly_rate: Optional[Decimal] = None,
        actor_id: Optional[UUID] = None,
    ) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            previous = work_order.status
            target = work_order_machine.guard("start_en_route", previous)
            now = self.clock()

            entry = await uow.work_orders.open_labor_entry(work_order.id, employee_id)
            if entry is not None:
                entry.travel_start_at = now
            else:
                await self._insert_open_entry(
                    uow,
                    work_order,
                    WorkOrderLabor(
                        employee_id=employee_id,
                        clock_in_at=now,
                        travel_start_at=now,
                        break_minutes=0,
                        total_minutes=0,
                        hourly_rate=hourly_rate if hourly_rate is not None else self.settings.DEFAULT_HOURLY_RATE,
                    ),
                )
            work_order.status = target
            uow.work_orders.add_activity(
                work_order, "EN_ROUTE", "Technician en route to site", actor_id,
                {"employee_id": str(employee_id)},
            )
            await uow.flush()
            log.info("work order %s: %s -> %s", work_order.work_order_no, previous.value, target.value)
            return work_order

    async def arrive_at_site(self, work_order_id: UUID, employee_id: UUID, actor_id: Optional[UUID] = None) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("arrive", work_order.status)
            entry = await uow.work_orders.open_labor_entry(work_order.id, employee_id)
            if entry is None:
                raise PreconditionFailedError(
                    "Employee is not clocked in", context={"employee_id": str(employee_id)}
                )
            entry.arrived_at = self.clock()
            uow.work_orders.add_activity(
                work_order, "ARRIVED", "Technician arrived at site", actor_id,
                {"employee_id": str(employee_id)},
            )
            await uow.flush()
            return work_order

    async def start_work(self, work_order_id: UUID, actor_id: Optional[UUID] = None) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            previous = work_order.status
            target = work_order_machine.guard("start_work", previous)
            request = await uow.service_requests.require(work_order.service_request_id, lock=True)

            work_order.status = target
            work_order.started_at = self.clock()
            uow.work_orders.add_activity(work_order, "STARTED", "Work started", actor_id)
            await uow.service_requests.set_status(request, ServiceRequestStatus.IN_PROGRESS)
            await uow.flush()
            log.info("work order %s: %s -> %s", work_order.work_order_no, previous.value, target.value)
            return work_order

    async def clock_in(
        self,
        work_order_id: UUID,
        employee_id: UUID,
        hourly_rate: Optional[Decimal] = None,
        actor_id: Optional[UUID] = None,
    ) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("clock_in", work_order.status)

            if await uow.work_orders.open_labor_entries(work_order.id, employee_id):
                raise PreconditionFailedError(
                    "Employee is already clocked in", context={"employee_id": str(employee_id)}
                )
            await self._insert_open_entry(
                uow,
                work_order,
                WorkOrderLabor(
                    employee_id=employee_id,
                    clock_in_at=self.clock(),
                    break_minutes=0,
                    total_minutes=0,
                    hourly_rate=hourly_rate if hourly_rate is not None else self.settings.DEFAULT_HOURLY_RATE,
                ),
            )
            uow.work_orders.add_activity(
                work_order, "CLOCK_IN", f"Employee {employee_id} clocked in", actor_id,
                {"employee_id": str(employee_id)},
            )
            await uow.flush()
            return work_order

    async def clock_out(
        self,
        work_order_id: UUID,
        employee_id: UUID,
        break_minutes: int = 0,
        notes: Optional[str] = None,
        actor_id: Optional[UUID] = None,
    ) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("clock_out", work_order.status)

            entry = await uow.work_orders.open_labor_entry(work_order.id, employee_id)
            if entry is None:
                raise PreconditionFailedError(
                    "Employee is not clocked in", context={"employee_id": str(employee_id)}
                )
            entry.clock_out_at = self.clock()
            entry.break_minutes = break_minutes
            entry.total_minutes = calc.worked_minutes(entry.clock_in_at, entry.clock_out_at, break_minutes)
            if notes is not None:
                entry.notes = notes
            recompute_costs(work_order, self.settings.DEFAULT_HOURLY_RATE)

            uow.work_orders.add_activity(
                work_order, "CLOCK_OUT", f"Employee {employee_id} clocked out", actor_id,
                {"employee_id": str(employee_id), "total_minutes": entry.total_minutes},
            )
            await uow.flush()
            return work_order

    async def complete_checklist(
        self,
        work_order_id: UUID,
        checklist_id: UUID,
        data: ChecklistUpdateIn,
        actor_id: Optional[UUID] = None,
    ) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("checklist", work_order.status)
            row = next((c for c in work_order.checklists if c.id == checklist_id), None)
            if row is None:
                row = await uow.work_orders.get_checklist(checklist_id)
                if row.work_order_id != work_order.id:
                    raise NotFoundError("Checklist item", checklist_id)

            row.is_completed = data.is_completed
            row.completed_at = self.clock() if data.is_completed else None
            row.completed_by = actor_id if data.is_completed else None
            row.notes = data.notes
            row.photo_url = data.photo_url

            state = "completed" if data.is_completed else "reopened"
            uow.work_orders.add_activity(
                work_order, "CHECKLIST_UPDATED", f"Checklist item {row.title} {state}", actor_id,
                {"checklist_id": str(row.id), "is_completed": data.is_completed},
            )
            await uow.flush()
            return work_order

    async def add_item(self, work_order_id: UUID, data: AddItemIn, actor_id: Optional[UUID] = None) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("add_item", work_order.status)

            item = _item(data, is_additional=data.is_additional, is_from_estimate=False, added_by=actor_id)
            work_order.items.append(item)
            recompute_costs(work_order, self.settings.DEFAULT_HOURLY_RATE)
            uow.work_orders.add_activity(
                work_order, "ITEM_ADDED",
                f"Item added: {item.description} x {format(item.quantity.normalize(), 'f')}", actor_id,
                {"total_cost": str(item.total_cost), "is_additional": data.is_additional},
            )
            await uow.flush()
            return work_order

    async def add_photo(self, work_order_id: UUID, data: PhotoIn, actor_id: Optional[UUID] = None) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("add_photo", work_order.status)
            work_order.photos.append(
                WorkOrderPhoto(photo_type=data.photo_type, url=data.url, caption=data.caption, uploaded_by=actor_id)
            )
            uow.work_orders.add_activity(
                work_order, "PHOTO_ADDED", f"{data.photo_type.value} photo added", actor_id
            )
            await uow.flush()
            return work_order

    async def complete(self, work_order_id: UUID, data: CompleteIn, actor_id: Optional[UUID] = None) -> WorkOrder:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            previous = work_order.status
            target = work_order_machine.guard("complete", previous)

            missing = [c.title for c in work_order.checklists if c.is_required and not c.is_completed]
            if missing:
                raise PreconditionFailedError(
                    f"Required checklist items not completed: {', '.join(missing)}",
                    context={"work_order_id": str(work_order.id), "items": missing},
                )
            request = await uow.service_requests.require(work_order.service_request_id, lock=True)

            now = self.clock()
            if work_order.started_at is not None:
                work_order.actual_duration = calc.worked_minutes(work_order.started_at, now)
            if data.additional_cost is not None:
                work_order.additional_cost = data.additional_cost
            recompute_costs(work_order, self.settings.DEFAULT_HOURLY_RATE)

            work_order.status = target
            work_order.completed_at = now
            work_order.work_performed = data.work_performed
            if data.technician_notes is not None:
                work_order.technician_notes = data.technician_notes
            work_order.customer_signature = data.customer_signature
            work_order.technician_signature = data.technician_signature
            work_order.signed_at = now if data.customer_signature else None
            work_order.customer_feedback = data.customer_feedback
            work_order.customer_rating = data.customer_rating

            uow.work_orders.add_activity(
                work_order, "COMPLETED", f"Work order {work_order.work_order_no} completed", actor_id,
                {"total_cost": str(work_order.total_cost), "actual_duration": work_order.actual_duration},
            )
            await uow.service_requests.set_status(request, ServiceRequestStatus.COMPLETED)
            request.completed_at = now
            await uow.flush()
            log.info("work order %s: %s -> %s", work_order.work_order_no, previous.value, target.value)
            return work_order

    async def put_on_hold(self, work_order_id: UUID, reason: str, actor_id: Optional[UUID] = None) -> WorkOrder:
        return await self._transition(
            work_order_id, "hold", "ON_HOLD", f"Work order put on hold: {reason}", actor_id,
            {"reason": reason}, hold_reason=reason,
        )

    async def resume_from_hold(self, work_order_id: UUID, actor_id: Optional[UUID] = None) -> WorkOrder:
        return await self._transition(
            work_order_id, "resume", "RESUMED", "Work resumed", actor_id, hold_reason=None
        )

    async def requires_follow_up(self, work_order_id: UUID, reason: str, actor_id: Optional[UUID] = None) -> WorkOrder:
        return await self._transition(
            work_order_id, "follow_up", "REQUIRES_FOLLOWUP", f"Follow-up required: {reason}", actor_id,
            {"reason": reason}, technician_notes=reason,
        )

    async def cancel(self, work_order_id: UUID, reason: Optional[str] = None, actor_id: Optional[UUID] = None) -> WorkOrder:
        description = f"Work order cancelled: {reason}" if reason else "Work order cancelled"
        return await self._transition(
            work_order_id, "cancel", "CANCELLED", description, actor_id,
            {"reason": reason} if reason else None, cancellation_reason=reason,
        )

    async def delete(self, work_order_id: UUID) -> None:
        async with self.uow_factory() as uow:
            work_order = await uow.work_orders.require(work_order_id, lock=True)
            work_order_machine.guard("delete", work_order.status)
            await uow.work_orders.delete(work_order)
            log.info("work order %s deleted", work_order.work_order_no)
