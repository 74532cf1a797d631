# src/fieldops/tests/test_work_orders.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fieldops.enums import (
    AdjustmentType,
    EstimateStatus,
    PhotoType,
    QuoteItemType,
    QuoteStatus,
    ServiceRequestStatus,
    TeamRole,
    WorkOrderItemType,
    WorkOrderStatus,
)
from fieldops.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    PreconditionFailedError,
)
from fieldops.repositories import WorkOrderRepository
from fieldops.schemas.estimates import EstimateCreate, EstimateItemIn, EstimateLaborItemIn
from fieldops.schemas.quotes import QuoteCreate, QuoteItemIn
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
from fieldops.services import WorkOrderEngine

pytestmark = pytest.mark.anyio

D = Decimal
TECH = uuid.uuid4()
HELPER = uuid.uuid4()


class Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


def order_payload(service_request_id, **overrides) -> WorkOrderCreate:
    fields = dict(
        service_request_id=service_request_id,
        title="Replace kitchen sink trap",
        items=[WorkOrderItemIn(description="Bottle trap", unit="pcs", quantity=D("2"), unit_cost=D("12.50"))],
        checklist=[
            ChecklistItemIn(title="Isolate water supply", is_required=True),
            ChecklistItemIn(title="Test for leaks", is_required=True),
            ChecklistItemIn(title="Photograph finished work"),
        ],
    )
    fields.update(overrides)
    return WorkOrderCreate(**fields)


def open_entries(work_order, employee_id):
    return [e for e in work_order.labor if e.employee_id == employee_id and e.clock_out_at is None]


async def scheduled_order(engine, service_request_id):
    work_order = await engine.create(order_payload(service_request_id))
    return await engine.schedule(
        work_order.id, ScheduleIn(scheduled_date=datetime.now(timezone.utc).date(), scheduled_time="09:30")
    )


async def test_create_sets_costs_and_schedules_request(work_order_engine, service_request, load_request):
    work_order = await work_order_engine.create(order_payload(service_request.id))

    assert work_order.work_order_no.startswith("WO-")
    assert work_order.status == WorkOrderStatus.PENDING
    assert work_order.material_cost == D("25.00")
    assert work_order.total_cost == D("25.00")
    assert [c.title for c in work_order.checklists][:2] == ["Isolate water supply", "Test for leaks"]
    assert [a.action for a in work_order.activities] == ["CREATED"]
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.SCHEDULED


async def test_assign_team_promotes_pending_once(work_order_engine, service_request):
    work_order = await work_order_engine.create(order_payload(service_request.id))

    first = await work_order_engine.assign_team(work_order.id, [TeamMemberIn(employee_id=TECH, role=TeamRole.LEAD)])
    assert first.status == WorkOrderStatus.SCHEDULED

    second = await work_order_engine.assign_team(
        work_order.id,
        [TeamMemberIn(employee_id=HELPER, role=TeamRole.HELPER), TeamMemberIn(employee_id=HELPER)],
    )
    assert second.status == WorkOrderStatus.SCHEDULED
    assert [m.employee_id for m in second.team] == [HELPER]
    assert [a.action for a in second.activities] == ["CREATED", "TEAM_ASSIGNED", "TEAM_ASSIGNED"]


async def test_field_flow_to_completion(work_order_engine, service_request, load_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    assert work_order.scheduled_time == "09:30"

    await work_order_engine.confirm(work_order.id)
    en_route = await work_order_engine.start_en_route(work_order.id, TECH)
    assert en_route.status == WorkOrderStatus.EN_ROUTE
    assert open_entries(en_route, TECH)[0].travel_start_at is not None

    arrived = await work_order_engine.arrive_at_site(work_order.id, TECH)
    assert open_entries(arrived, TECH)[0].arrived_at is not None
    assert arrived.status == WorkOrderStatus.EN_ROUTE

    started = await work_order_engine.start_work(work_order.id)
    assert started.status == WorkOrderStatus.IN_PROGRESS
    assert started.started_at is not None
    assert (await load_request(service_request.id)).status == ServiceRequestStatus.IN_PROGRESS

    for row in started.checklists:
        await work_order_engine.complete_checklist(work_order.id, row.id, ChecklistUpdateIn(is_completed=True))
    await work_order_engine.add_item(
        work_order.id, AddItemIn(description="Braided hose", quantity=D("1"), unit_cost=D("9.99"))
    )
    await work_order_engine.add_photo(
        work_order.id, PhotoIn(photo_type=PhotoType.AFTER, url="https://files.example.test/wo/after.jpg")
    )
    await work_order_engine.clock_out(work_order.id, TECH)

    completed = await work_order_engine.complete(
        work_order.id,
        CompleteIn(work_performed="Replaced trap and hose", customer_signature="sig:abc", customer_rating=5),
    )
    assert completed.status == WorkOrderStatus.COMPLETED
    assert completed.completed_at is not None
    assert completed.signed_at is not None
    assert completed.material_cost == D("34.99")
    assert completed.actual_duration is not None
    assert len(completed.photos) == 1

    request = await load_request(service_request.id)
    assert request.status == ServiceRequestStatus.COMPLETED
    assert request.completed_at is not None

    actions = [a.action for a in completed.activities]
    for expected in ("SCHEDULED", "CONFIRMED", "EN_ROUTE", "ARRIVED", "STARTED", "CHECKLIST_UPDATED",
                     "ITEM_ADDED", "PHOTO_ADDED", "CLOCK_OUT", "COMPLETED"):
        assert expected in actions


async def test_complete_without_signature_leaves_signed_at_empty(work_order_engine, service_request):
    work_order = await work_order_engine.create(order_payload(service_request.id, checklist=[]))
    await work_order_engine.assign_team(work_order.id, [TeamMemberIn(employee_id=TECH)])
    await work_order_engine.start_work(work_order.id)
    completed = await work_order_engine.complete(
        work_order.id, CompleteIn(work_performed="Done", additional_cost=D("15"))
    )
    assert completed.signed_at is None
    assert completed.additional_cost == D("15.00")
    assert completed.total_cost == D("40.00")


async def test_complete_blocked_by_required_checklist(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    started = await work_order_engine.start_work(work_order.id)
    first_required = started.checklists[0]
    await work_order_engine.complete_checklist(
        work_order.id, first_required.id, ChecklistUpdateIn(is_completed=True, notes="valve closed")
    )

    with pytest.raises(PreconditionFailedError) as info:
        await work_order_engine.complete(work_order.id, CompleteIn(work_performed="done"))
    assert info.value.message == "Required checklist items not completed: Test for leaks"

    reloaded = await work_order_engine.get(work_order.id)
    assert reloaded.status == WorkOrderStatus.IN_PROGRESS
    assert reloaded.completed_at is None


async def test_checklist_stamps_completer(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    row = work_order.checklists[0]
    done = await work_order_engine.complete_checklist(
        work_order.id, row.id, ChecklistUpdateIn(is_completed=True), actor_id=TECH
    )
    stamped = [c for c in done.checklists if c.id == row.id][0]
    assert stamped.completed_by == TECH and stamped.completed_at is not None

    reopened = await work_order_engine.complete_checklist(work_order.id, row.id, ChecklistUpdateIn(is_completed=False))
    row_after = [c for c in reopened.checklists if c.id == row.id][0]
    assert row_after.completed_at is None and row_after.completed_by is None


async def test_checklist_row_of_another_order_is_not_found(work_order_engine, service_request):
    one = await scheduled_order(work_order_engine, service_request.id)
    other = await scheduled_order(work_order_engine, service_request.id)
    with pytest.raises(NotFoundError):
        await work_order_engine.complete_checklist(one.id, other.checklists[0].id, ChecklistUpdateIn(is_completed=True))


async def test_cancel_completed_order_is_refused(work_order_engine, service_request):
    work_order = await work_order_engine.create(order_payload(service_request.id, checklist=[]))
    await work_order_engine.assign_team(work_order.id, [TeamMemberIn(employee_id=TECH)])
    await work_order_engine.start_work(work_order.id)
    await work_order_engine.complete(work_order.id, CompleteIn(work_performed="done"))

    with pytest.raises(InvalidStateTransitionError):
        await work_order_engine.cancel(work_order.id, "customer called")
    assert (await work_order_engine.get(work_order.id)).status == WorkOrderStatus.COMPLETED


async def test_second_clock_in_is_refused(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    await work_order_engine.clock_in(work_order.id, TECH)

    with pytest.raises(PreconditionFailedError) as info:
        await work_order_engine.clock_in(work_order.id, TECH)
    assert info.value.message == "Employee is already clocked in"

    reloaded = await work_order_engine.get(work_order.id)
    assert len(open_entries(reloaded, TECH)) == 1

    # another employee is unaffected
    await work_order_engine.clock_in(work_order.id, HELPER)


async def test_open_entry_index_backs_up_a_stale_read(work_order_engine, service_request, monkeypatch):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    await work_order_engine.clock_in(work_order.id, TECH)

    async def stale_read(self, work_order_id, employee_id):
        return []

    monkeypatch.setattr(WorkOrderRepository, "open_labor_entries", stale_read)
    with pytest.raises(PreconditionFailedError) as info:
        await work_order_engine.clock_in(work_order.id, TECH)
    assert info.value.message == "Employee is already clocked in"
    assert info.value.context == {"work_order_id": str(work_order.id), "employee_id": str(TECH)}
    monkeypatch.undo()

    reloaded = await work_order_engine.get(work_order.id)
    assert len(open_entries(reloaded, TECH)) == 1
    assert [a.action for a in reloaded.activities].count("CLOCK_IN") == 1


async def test_clock_out_recomputes_labor_cost(uow_factory, service_request):
    clock = Clock(datetime(2025, 5, 6, 8, 0, tzinfo=timezone.utc))
    engine = WorkOrderEngine(uow_factory, clock=clock)
    work_order = await scheduled_order(engine, service_request.id)

    await engine.clock_in(work_order.id, TECH, hourly_rate=D("40"))
    await engine.clock_in(work_order.id, HELPER)
    clock.advance(hours=2)
    await engine.clock_out(work_order.id, TECH, break_minutes=30, notes="lunch")
    done = await engine.clock_out(work_order.id, HELPER)

    entries = {e.employee_id: e for e in done.labor}
    assert entries[TECH].total_minutes == 90
    assert entries[HELPER].total_minutes == 120
    assert entries[HELPER].hourly_rate == D("25.00")
    # 1.5h x 40 + 2h x 25
    assert done.labor_cost == D("110.00")
    assert done.total_cost == D("135.00")

    with pytest.raises(PreconditionFailedError):
        await engine.clock_out(work_order.id, TECH)


async def test_arrival_needs_an_open_entry(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    with pytest.raises(PreconditionFailedError):
        await work_order_engine.arrive_at_site(work_order.id, TECH)


async def test_en_route_reuses_open_entry(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    await work_order_engine.clock_in(work_order.id, TECH)
    en_route = await work_order_engine.start_en_route(work_order.id, TECH)
    assert len(en_route.labor) == 1
    assert en_route.labor[0].travel_start_at is not None


async def test_hold_resume_and_follow_up(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    with pytest.raises(InvalidStateTransitionError):
        await work_order_engine.put_on_hold(work_order.id, "parts missing")

    await work_order_engine.start_work(work_order.id)
    held = await work_order_engine.put_on_hold(work_order.id, "parts missing")
    assert held.status == WorkOrderStatus.ON_HOLD and held.hold_reason == "parts missing"

    resumed = await work_order_engine.resume_from_hold(work_order.id)
    assert resumed.status == WorkOrderStatus.IN_PROGRESS and resumed.hold_reason is None

    flagged = await work_order_engine.requires_follow_up(work_order.id, "Cabinet base is rotten")
    assert flagged.status == WorkOrderStatus.REQUIRES_FOLLOWUP
    assert flagged.technician_notes == "Cabinet base is rotten"


async def test_reschedule_refused_once_in_progress(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    tomorrow = datetime.now(timezone.utc).date() + timedelta(days=1)
    moved = await work_order_engine.reschedule(work_order.id, ScheduleIn(scheduled_date=tomorrow, reason="rain"))
    assert moved.scheduled_date == tomorrow
    assert moved.activities[-1].metadata_["reason"] == "rain"

    await work_order_engine.start_work(work_order.id)
    with pytest.raises(InvalidStateTransitionError):
        await work_order_engine.reschedule(work_order.id, ScheduleIn(scheduled_date=tomorrow))


async def test_update_and_delete_only_before_field_work(work_order_engine, service_request):
    work_order = await scheduled_order(work_order_engine, service_request.id)
    updated = await work_order_engine.update(work_order.id, WorkOrderPatch(instructions="Ring bell twice"))
    assert updated.instructions == "Ring bell twice"
    assert updated.title == "Replace kitchen sink trap"

    await work_order_engine.confirm(work_order.id)
    with pytest.raises(InvalidStateTransitionError):
        await work_order_engine.update(work_order.id, WorkOrderPatch(title="x"))
    with pytest.raises(InvalidStateTransitionError):
        await work_order_engine.delete(work_order.id)

    draft = await work_order_engine.create(order_payload(service_request.id))
    await work_order_engine.delete(draft.id)
    with pytest.raises(NotFoundError):
        await work_order_engine.get(draft.id)


async def test_create_from_accepted_quote(work_order_engine, quote_engine, service_request):
    quote = await quote_engine.create(
        QuoteCreate(
            service_request_id=service_request.id,
            title="Sink repair",
            items=[
                QuoteItemIn(item_type=QuoteItemType.MATERIAL, description="Trap", quantity=D("2"), unit_price=D("11")),
                QuoteItemIn(item_type=QuoteItemType.LABOR, description="Plumber (1 worker(s) x 3 hours)",
                            quantity=D("1"), unit_price=D("60")),
            ],
        )
    )
    with pytest.raises(InvalidStateTransitionError):
        await work_order_engine.create_from_quote(FromQuoteIn(quote_id=quote.id))

    await quote_engine.send(quote.id)
    await quote_engine.record_customer_response(quote.id, True)
    work_order = await work_order_engine.create_from_quote(FromQuoteIn(quote_id=quote.id))

    assert work_order.quote_id == quote.id
    assert work_order.title == "Sink repair"
    by_type = {i.item_type: i for i in work_order.items}
    assert by_type[WorkOrderItemType.MATERIAL].total_cost == D("22.00")
    assert by_type[WorkOrderItemType.LABOR].quantity == D("1")
    assert by_type[WorkOrderItemType.LABOR].unit_cost == D("60.00")
    assert work_order.material_cost == D("82.00")

    converted = await quote_engine.get(quote.id)
    assert converted.status == QuoteStatus.CONVERTED
    assert converted.converted_to_work_order_id == work_order.id


async def test_create_from_approved_estimate(work_order_engine, estimate_engine, service_request):
    estimate = await estimate_engine.create(
        EstimateCreate(
            service_request_id=service_request.id,
            title="Sink repair",
            items=[EstimateItemIn(description="Trap", quantity=D("2"), unit_cost=D("10"),
                                  markup_type=AdjustmentType.PERCENTAGE, markup_value=D("10"))],
            labor_items=[EstimateLaborItemIn(description="Plumber", hours=D("3"), hourly_rate=D("20"))],
        )
    )
    with pytest.raises(InvalidStateTransitionError):
        await work_order_engine.create_from_estimate(FromEstimateIn(estimate_id=estimate.id))

    await estimate_engine.submit_for_approval(estimate.id)
    await estimate_engine.approve(estimate.id)
    work_order = await work_order_engine.create_from_estimate(
        FromEstimateIn(estimate_id=estimate.id, team=[TeamMemberIn(employee_id=TECH)])
    )

    assert work_order.estimate_id == estimate.id
    assert all(i.is_from_estimate for i in work_order.items)
    labor = [i for i in work_order.items if i.item_type == WorkOrderItemType.LABOR][0]
    assert labor.total_cost == D("60.00")
    material = [i for i in work_order.items if i.item_type == WorkOrderItemType.MATERIAL][0]
    assert material.unit_cost == D("10.00")
    assert material.total_cost == D("20.00")
    assert work_order.material_cost == D("80.00")

    source = await estimate_engine.get(estimate.id)
    assert source.status == EstimateStatus.APPROVED
    assert source.activities[-1].action == "WORK_ORDER_CREATED"


async def test_stats_counts_completed_today(work_order_engine, service_request):
    done = await work_order_engine.create(order_payload(service_request.id, checklist=[]))
    await work_order_engine.assign_team(done.id, [TeamMemberIn(employee_id=TECH)])
    await work_order_engine.start_work(done.id)
    await work_order_engine.complete(done.id, CompleteIn(work_performed="ok"))
    running = await scheduled_order(work_order_engine, service_request.id)
    await work_order_engine.start_work(running.id)
    await work_order_engine.create(order_payload(service_request.id))

    stats = await work_order_engine.stats(service_request.company_id)
    assert stats["total"] == 3
    assert stats["completed_today"] == 1
    assert stats["in_progress"] == 1
    assert stats["by_status"][WorkOrderStatus.PENDING] == 1

    rows, total = await work_order_engine.list(employee_id=TECH)
    assert total == 1 and rows[0].id == done.id
