# src/fieldops/tests/conftest.py
from __future__ import annotations

import os
import sys
import logging
import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport

from fieldops.db.models import ServiceRequest, SiteVisit
from fieldops.db.session import build_engine, build_sessionmaker, init_db
from fieldops.enums import ServiceRequestStatus
from fieldops.repositories import unit_of_work_factory
from fieldops.services import EstimateEngine, InvoiceEngine, QuoteEngine, WorkOrderEngine


# =========================
# Logging -> stdout
# =========================
@pytest.fixture(scope="session", autouse=True)
def _tests_log_to_stdout():
    """
    Ensure test logs go to stdout so they show up under pytest -s or log_cli=true.
    Avoid duplicates if handler is already present.
    """
    root = logging.getLogger()
    want = None
    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout:
            want = h
            break
    if want is None:
        want = logging.StreamHandler(sys.stdout)
        want.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(want)

    root.setLevel(os.getenv("TEST_LOG_LEVEL", "INFO").upper())


# Make anyio run on asyncio (so our async fixtures work everywhere)
@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


# ==============================================================
# Database: one throwaway SQLite file per test
# ==============================================================

@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'fieldops.db'}")
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sessionmaker(db_engine):
    return build_sessionmaker(db_engine)


@pytest.fixture
def uow_factory(sessionmaker):
    return unit_of_work_factory(sessionmaker)


@pytest.fixture
def company_id():
    return uuid.uuid4()


async def make_service_request(sessionmaker, company_id, *, request_no="SR-2025-0001", service_charge="50.00",
                               status=ServiceRequestStatus.NEW) -> ServiceRequest:
    async with sessionmaker() as session:
        request = ServiceRequest(
            company_id=company_id,
            request_no=request_no,
            customer_id=uuid.uuid4(),
            customer_name="Harbour View Apartments",
            title="Water leak under kitchen sink",
            complaint_type="PLUMBING",
            status=status,
            service_charge=Decimal(service_charge),
        )
        session.add(request)
        await session.commit()
        return request


@pytest.fixture
async def service_request(sessionmaker, company_id):
    return await make_service_request(sessionmaker, company_id)


@pytest.fixture
async def site_visit(sessionmaker, service_request):
    async with sessionmaker() as session:
        visit = SiteVisit(service_request_id=service_request.id, findings="Corroded trap and supply hose")
        session.add(visit)
        await session.commit()
        return visit


async def reload_service_request(sessionmaker, request_id) -> ServiceRequest:
    async with sessionmaker() as session:
        return await session.get(ServiceRequest, request_id)


# ==============================================================
# Engines
# ==============================================================

@pytest.fixture
def estimate_engine(uow_factory):
    return EstimateEngine(uow_factory)


@pytest.fixture
def quote_engine(uow_factory):
    return QuoteEngine(uow_factory)


@pytest.fixture
def work_order_engine(uow_factory):
    return WorkOrderEngine(uow_factory)


@pytest.fixture
def invoice_engine(uow_factory):
    return InvoiceEngine(uow_factory)


# ==============================================================
# In-process API client
# ==============================================================

@pytest.fixture
async def client(sessionmaker, uow_factory):
    """
    httpx.AsyncClient against an in-process app. ASGITransport does not run
    the lifespan handler, so the app state is bound to the test database here.
    """
    from fieldops.main import create_app

    app = create_app()
    app.state.async_sessionmaker = sessionmaker
    app.state.uow_factory = uow_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def make_request(sessionmaker, company_id):
    async def _make(**overrides) -> ServiceRequest:
        return await make_service_request(sessionmaker, company_id, **overrides)
    return _make


@pytest.fixture
def load_request(sessionmaker):
    async def _load(request_id) -> ServiceRequest:
        return await reload_service_request(sessionmaker, request_id)
    return _load
