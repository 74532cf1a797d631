# src/fieldops/api/deps.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Header, Request

from fieldops.repositories import UnitOfWorkFactory
from fieldops.services import EstimateEngine, InvoiceEngine, QuoteEngine, WorkOrderEngine


def get_uow_factory(request: Request) -> UnitOfWorkFactory:
    """The unit-of-work factory bound to the app's sessionmaker in the lifespan handler."""
    return request.app.state.uow_factory


def get_actor(x_user_id: Optional[uuid.UUID] = Header(default=None, alias="X-User-Id")) -> Optional[uuid.UUID]:
    # authentication lives upstream; the gateway forwards the caller's id
    return x_user_id


def get_estimate_engine(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> EstimateEngine:
    return EstimateEngine(uow_factory)


def get_quote_engine(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> QuoteEngine:
    return QuoteEngine(uow_factory)


def get_work_order_engine(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> WorkOrderEngine:
    return WorkOrderEngine(uow_factory)


def get_invoice_engine(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> InvoiceEngine:
    return InvoiceEngine(uow_factory)
