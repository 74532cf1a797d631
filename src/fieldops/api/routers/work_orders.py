# src/fieldops/api/routers/work_orders.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from fieldops.api.deps import get_actor, get_work_order_engine
from fieldops.enums import Priority, WorkOrderStatus
from fieldops.schemas.base import OptionalReasonIn, Page, ReasonIn
from fieldops.schemas.work_orders import (
    AddItemIn,
    AssignTeamIn,
    ChecklistUpdateIn,
    ClockOutIn,
    CompleteIn,
    EmployeeIn,
    FromEstimateIn,
    FromQuoteIn,
    PhotoIn,
    ScheduleIn,
    WorkOrderCreate,
    WorkOrderOut,
    WorkOrderPatch,
    WorkOrderStats,
    WorkOrderSummary,
)
from fieldops.services import WorkOrderEngine

router = APIRouter(prefix="/work-orders", tags=["work_orders"])


# ----- Creation -----
@router.post("", response_model=WorkOrderOut, status_code=status.HTTP_201_CREATED)
async def create_work_order(
    payload: WorkOrderCreate,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.create(payload, actor))


@router.post("/from-quote", response_model=WorkOrderOut, status_code=status.HTTP_201_CREATED)
async def create_work_order_from_quote(
    payload: FromQuoteIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.create_from_quote(payload, actor))


@router.post("/from-estimate", response_model=WorkOrderOut, status_code=status.HTTP_201_CREATED)
async def create_work_order_from_estimate(
    payload: FromEstimateIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.create_from_estimate(payload, actor))


# ----- Reads -----
@router.get("", response_model=Page[WorkOrderSummary])
async def list_work_orders(
    company_id: Optional[uuid.UUID] = None,
    service_request_id: Optional[uuid.UUID] = None,
    status_: Optional[WorkOrderStatus] = Query(default=None, alias="status"),
    priority: Optional[Priority] = None,
    employee_id: Optional[uuid.UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    engine: WorkOrderEngine = Depends(get_work_order_engine),
):
    rows, total = await engine.list(
        company_id=company_id,
        service_request_id=service_request_id,
        status=status_,
        priority=priority,
        employee_id=employee_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return Page[WorkOrderSummary].build([WorkOrderSummary.model_validate(r) for r in rows], total, page, limit)


@router.get("/stats", response_model=WorkOrderStats)
async def work_order_stats(
    company_id: Optional[uuid.UUID] = None,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
):
    return WorkOrderStats.model_validate(await engine.stats(company_id))


@router.get("/{work_order_id}", response_model=WorkOrderOut)
async def get_work_order(work_order_id: uuid.UUID, engine: WorkOrderEngine = Depends(get_work_order_engine)):
    return WorkOrderOut.model_validate(await engine.get(work_order_id))


@router.patch("/{work_order_id}", response_model=WorkOrderOut)
async def update_work_order(
    work_order_id: uuid.UUID,
    payload: WorkOrderPatch,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.update(work_order_id, payload, actor))


@router.delete("/{work_order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_work_order(work_order_id: uuid.UUID, engine: WorkOrderEngine = Depends(get_work_order_engine)):
    await engine.delete(work_order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----- Office -----
@router.put("/{work_order_id}/team", response_model=WorkOrderOut)
async def assign_work_order_team(
    work_order_id: uuid.UUID,
    payload: AssignTeamIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.assign_team(work_order_id, payload.members, actor))


@router.post("/{work_order_id}/schedule", response_model=WorkOrderOut)
async def schedule_work_order(
    work_order_id: uuid.UUID,
    payload: ScheduleIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.schedule(work_order_id, payload, actor))


@router.post("/{work_order_id}/reschedule", response_model=WorkOrderOut)
async def reschedule_work_order(
    work_order_id: uuid.UUID,
    payload: ScheduleIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.reschedule(work_order_id, payload, actor))


@router.post("/{work_order_id}/confirm", response_model=WorkOrderOut)
async def confirm_work_order(
    work_order_id: uuid.UUID,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.confirm(work_order_id, actor))


# ----- Field -----
@router.post("/{work_order_id}/en-route", response_model=WorkOrderOut)
async def start_en_route(
    work_order_id: uuid.UUID,
    payload: EmployeeIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    work_order = await engine.start_en_route(work_order_id, payload.employee_id, payload.hourly_rate, actor)
    return WorkOrderOut.model_validate(work_order)


@router.post("/{work_order_id}/arrive", response_model=WorkOrderOut)
async def arrive_at_site(
    work_order_id: uuid.UUID,
    payload: EmployeeIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.arrive_at_site(work_order_id, payload.employee_id, actor))


@router.post("/{work_order_id}/start", response_model=WorkOrderOut)
async def start_work(
    work_order_id: uuid.UUID,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.start_work(work_order_id, actor))


@router.post("/{work_order_id}/clock-in", response_model=WorkOrderOut)
async def clock_in(
    work_order_id: uuid.UUID,
    payload: EmployeeIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    work_order = await engine.clock_in(work_order_id, payload.employee_id, payload.hourly_rate, actor)
    return WorkOrderOut.model_validate(work_order)


@router.post("/{work_order_id}/clock-out", response_model=WorkOrderOut)
async def clock_out(
    work_order_id: uuid.UUID,
    payload: ClockOutIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    work_order = await engine.clock_out(
        work_order_id, payload.employee_id, payload.break_minutes, payload.notes, actor
    )
    return WorkOrderOut.model_validate(work_order)


@router.patch("/{work_order_id}/checklist/{checklist_id}", response_model=WorkOrderOut)
async def update_checklist_item(
    work_order_id: uuid.UUID,
    checklist_id: uuid.UUID,
    payload: ChecklistUpdateIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    work_order = await engine.complete_checklist(work_order_id, checklist_id, payload, actor)
    return WorkOrderOut.model_validate(work_order)


@router.post("/{work_order_id}/items", response_model=WorkOrderOut, status_code=status.HTTP_201_CREATED)
async def add_work_order_item(
    work_order_id: uuid.UUID,
    payload: AddItemIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.add_item(work_order_id, payload, actor))


@router.post("/{work_order_id}/photos", response_model=WorkOrderOut, status_code=status.HTTP_201_CREATED)
async def add_work_order_photo(
    work_order_id: uuid.UUID,
    payload: PhotoIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.add_photo(work_order_id, payload, actor))


@router.post("/{work_order_id}/complete", response_model=WorkOrderOut)
async def complete_work_order(
    work_order_id: uuid.UUID,
    payload: CompleteIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.complete(work_order_id, payload, actor))


# ----- Exceptions to the happy path -----
@router.post("/{work_order_id}/hold", response_model=WorkOrderOut)
async def put_work_order_on_hold(
    work_order_id: uuid.UUID,
    payload: ReasonIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.put_on_hold(work_order_id, payload.reason, actor))


@router.post("/{work_order_id}/resume", response_model=WorkOrderOut)
async def resume_work_order(
    work_order_id: uuid.UUID,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.resume_from_hold(work_order_id, actor))


@router.post("/{work_order_id}/follow-up", response_model=WorkOrderOut)
async def flag_work_order_follow_up(
    work_order_id: uuid.UUID,
    payload: ReasonIn,
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.requires_follow_up(work_order_id, payload.reason, actor))


@router.post("/{work_order_id}/cancel", response_model=WorkOrderOut)
async def cancel_work_order(
    work_order_id: uuid.UUID,
    payload: OptionalReasonIn = OptionalReasonIn(),
    engine: WorkOrderEngine = Depends(get_work_order_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return WorkOrderOut.model_validate(await engine.cancel(work_order_id, payload.reason, actor))
