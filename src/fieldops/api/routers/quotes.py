# src/fieldops/api/routers/quotes.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from fieldops.api.deps import get_actor, get_quote_engine
from fieldops.enums import QuoteStatus
from fieldops.schemas.base import OptionalReasonIn, Page
from fieldops.schemas.quotes import CustomerResponseIn, QuoteCreate, QuoteOut
from fieldops.services import QuoteEngine

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
async def create_quote(
    payload: QuoteCreate,
    engine: QuoteEngine = Depends(get_quote_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return QuoteOut.model_validate(await engine.create(payload, actor))


@router.post("/expire", response_model=list[QuoteOut])
async def expire_quotes(
    as_of: Optional[date] = None,
    company_id: Optional[uuid.UUID] = None,
    engine: QuoteEngine = Depends(get_quote_engine),
):
    return [QuoteOut.model_validate(q) for q in await engine.expire_overdue(as_of, company_id)]


@router.get("", response_model=Page[QuoteOut])
async def list_quotes(
    company_id: Optional[uuid.UUID] = None,
    service_request_id: Optional[uuid.UUID] = None,
    status_: Optional[QuoteStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    engine: QuoteEngine = Depends(get_quote_engine),
):
    rows, total = await engine.list(
        company_id=company_id, service_request_id=service_request_id, status=status_, page=page, limit=limit
    )
    return Page[QuoteOut].build([QuoteOut.model_validate(r) for r in rows], total, page, limit)


@router.get("/{quote_id}", response_model=QuoteOut)
async def get_quote(quote_id: uuid.UUID, engine: QuoteEngine = Depends(get_quote_engine)):
    return QuoteOut.model_validate(await engine.get(quote_id))


@router.post("/{quote_id}/send", response_model=QuoteOut)
async def send_quote(
    quote_id: uuid.UUID,
    engine: QuoteEngine = Depends(get_quote_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return QuoteOut.model_validate(await engine.send(quote_id, actor))


@router.post("/{quote_id}/view", response_model=QuoteOut)
async def mark_quote_viewed(quote_id: uuid.UUID, engine: QuoteEngine = Depends(get_quote_engine)):
    return QuoteOut.model_validate(await engine.mark_viewed(quote_id))


@router.post("/{quote_id}/respond", response_model=QuoteOut)
async def record_quote_response(
    quote_id: uuid.UUID,
    payload: CustomerResponseIn,
    engine: QuoteEngine = Depends(get_quote_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    quote = await engine.record_customer_response(quote_id, payload.accepted, payload.notes, actor)
    return QuoteOut.model_validate(quote)


@router.post("/{quote_id}/cancel", response_model=QuoteOut)
async def cancel_quote(
    quote_id: uuid.UUID,
    payload: OptionalReasonIn = OptionalReasonIn(),
    engine: QuoteEngine = Depends(get_quote_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return QuoteOut.model_validate(await engine.cancel(quote_id, payload.reason, actor))
