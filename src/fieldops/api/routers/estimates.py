# src/fieldops/api/routers/estimates.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from fieldops.api.deps import get_actor, get_estimate_engine
from fieldops.enums import EstimateStatus
from fieldops.schemas.base import NotesIn, OptionalReasonIn, Page, ReasonIn
from fieldops.schemas.estimates import (
    ConvertToQuoteIn,
    CreateRevisionIn,
    EstimateCreate,
    EstimateOut,
    EstimatePatch,
    EstimateStats,
    EstimateSummary,
    RevisionRequestIn,
)
from fieldops.schemas.quotes import QuoteOut
from fieldops.services import EstimateEngine

router = APIRouter(prefix="/estimates", tags=["estimates"])


@router.post("", response_model=EstimateOut, status_code=status.HTTP_201_CREATED)
async def create_estimate(
    payload: EstimateCreate,
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return EstimateOut.model_validate(await engine.create(payload, actor))


@router.get("", response_model=Page[EstimateSummary])
async def list_estimates(
    company_id: Optional[uuid.UUID] = None,
    service_request_id: Optional[uuid.UUID] = None,
    status_: Optional[EstimateStatus] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    latest_only: bool = True,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    engine: EstimateEngine = Depends(get_estimate_engine),
):
    rows, total = await engine.list(
        company_id=company_id,
        service_request_id=service_request_id,
        status=status_,
        search=search,
        latest_only=latest_only,
        page=page,
        limit=limit,
    )
    return Page[EstimateSummary].build([EstimateSummary.model_validate(r) for r in rows], total, page, limit)


@router.get("/stats", response_model=EstimateStats)
async def estimate_stats(
    company_id: Optional[uuid.UUID] = None,
    engine: EstimateEngine = Depends(get_estimate_engine),
):
    return EstimateStats.model_validate(await engine.stats(company_id))


@router.get("/{estimate_id}", response_model=EstimateOut)
async def get_estimate(estimate_id: uuid.UUID, engine: EstimateEngine = Depends(get_estimate_engine)):
    return EstimateOut.model_validate(await engine.get(estimate_id))


@router.get("/{estimate_id}/versions", response_model=list[EstimateSummary])
async def list_estimate_versions(estimate_id: uuid.UUID, engine: EstimateEngine = Depends(get_estimate_engine)):
    return [EstimateSummary.model_validate(e) for e in await engine.versions(estimate_id)]


@router.patch("/{estimate_id}", response_model=EstimateOut)
async def update_estimate(
    estimate_id: uuid.UUID,
    payload: EstimatePatch,
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return EstimateOut.model_validate(await engine.update(estimate_id, payload, actor))


@router.delete("/{estimate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_estimate(estimate_id: uuid.UUID, engine: EstimateEngine = Depends(get_estimate_engine)):
    await engine.delete(estimate_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{estimate_id}/submit", response_model=EstimateOut)
async def submit_estimate(
    estimate_id: uuid.UUID,
    payload: NotesIn = NotesIn(),
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return EstimateOut.model_validate(await engine.submit_for_approval(estimate_id, payload.notes, actor))


@router.post("/{estimate_id}/approve", response_model=EstimateOut)
async def approve_estimate(
    estimate_id: uuid.UUID,
    payload: NotesIn = NotesIn(),
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return EstimateOut.model_validate(await engine.approve(estimate_id, payload.notes, actor))


@router.post("/{estimate_id}/reject", response_model=EstimateOut)
async def reject_estimate(
    estimate_id: uuid.UUID,
    payload: ReasonIn,
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return EstimateOut.model_validate(await engine.reject(estimate_id, payload.reason, actor))


@router.post("/{estimate_id}/request-revision", response_model=EstimateOut)
async def request_estimate_revision(
    estimate_id: uuid.UUID,
    payload: RevisionRequestIn,
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    estimate = await engine.request_revision(estimate_id, payload.reason, payload.notes, actor)
    return EstimateOut.model_validate(estimate)


@router.post("/{estimate_id}/revisions", response_model=EstimateOut, status_code=status.HTTP_201_CREATED)
async def create_estimate_revision(
    estimate_id: uuid.UUID,
    payload: CreateRevisionIn = CreateRevisionIn(),
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return EstimateOut.model_validate(await engine.create_revision(estimate_id, payload.notes, actor))


@router.post("/{estimate_id}/convert-to-quote", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
async def convert_estimate_to_quote(
    estimate_id: uuid.UUID,
    payload: ConvertToQuoteIn = ConvertToQuoteIn(),
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return QuoteOut.model_validate(await engine.convert_to_quote(estimate_id, payload, actor))


@router.post("/{estimate_id}/cancel", response_model=EstimateOut)
async def cancel_estimate(
    estimate_id: uuid.UUID,
    payload: OptionalReasonIn = OptionalReasonIn(),
    engine: EstimateEngine = Depends(get_estimate_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return EstimateOut.model_validate(await engine.cancel(estimate_id, payload.reason, actor))
