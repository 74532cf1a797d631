"""
Unit of work spanning every aggregate touched by one engine operation.

One ``AsyncSession`` and one transaction per ``async with`` block: the
repositories it hands out share that session, the block commits when it
exits cleanly and rolls back on any exception. A status change, its child
rows, the audit entry and the service-request side effect therefore land
together or not at all.
"""

from typing import Callable, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldops.app_logger import get_logger

from .estimates import EstimateRepository
from .invoices import InvoiceRepository
from .numbering import NumberingRepository
from .quotes import QuoteRepository
from .service_requests import ServiceRequestRepository
from .work_orders import WorkOrderRepository

logger = get_logger(__name__)

RepositoryType = Union[
    ServiceRequestRepository,
    EstimateRepository,
    QuoteRepository,
    WorkOrderRepository,
    InvoiceRepository,
    NumberingRepository,
]


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None
        self._repositories: Dict[str, RepositoryType] = {}

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork used outside of 'async with'")
        return self._session

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        self._repositories = {}
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        finally:
            await self.session.close()
            self._repositories.clear()
            self._session = None

    def _repo(self, key: str, cls):
        if key not in self._repositories:
            self._repositories[key] = cls(self.session)
        repo = self._repositories[key]
        assert isinstance(repo, cls)
        return repo

    @property
    def service_requests(self) -> ServiceRequestRepository:
        return self._repo("service_requests", ServiceRequestRepository)

    @property
    def estimates(self) -> EstimateRepository:
        return self._repo("estimates", EstimateRepository)

    @property
    def quotes(self) -> QuoteRepository:
        return self._repo("quotes", QuoteRepository)

    @property
    def work_orders(self) -> WorkOrderRepository:
        return self._repo("work_orders", WorkOrderRepository)

    @property
    def invoices(self) -> InvoiceRepository:
        return self._repo("invoices", InvoiceRepository)

    @property
    def numbering(self) -> NumberingRepository:
        return self._repo("numbering", NumberingRepository)

    async def flush(self) -> None:
        await self.session.flush()

    async def commit(self) -> None:
        await self.session.commit()
        logger.debug("Unit of work committed")

    async def rollback(self) -> None:
        await self.session.rollback()
        logger.debug("Unit of work rolled back")


UnitOfWorkFactory = Callable[[], UnitOfWork]


def unit_of_work_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWorkFactory:
    """Bind a sessionmaker; engines call the result once per operation."""
    def _factory() -> UnitOfWork:
        return UnitOfWork(session_factory)
    return _factory
