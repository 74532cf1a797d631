"""
Persistence ports, one repository per aggregate, grouped by a unit of work.
"""

from .base import BaseRepository
from .estimates import EstimateRepository
from .invoices import InvoiceRepository
from .numbering import NumberingRepository
from .quotes import QuoteRepository
from .service_requests import ServiceRequestRepository
from .unit_of_work import UnitOfWork, UnitOfWorkFactory, unit_of_work_factory
from .work_orders import WorkOrderRepository

__all__ = [
    "BaseRepository",
    "EstimateRepository",
    "InvoiceRepository",
    "NumberingRepository",
    "QuoteRepository",
    "ServiceRequestRepository",
    "WorkOrderRepository",
    "UnitOfWork",
    "UnitOfWorkFactory",
    "unit_of_work_factory",
]
