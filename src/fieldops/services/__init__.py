"""
Workflow engines for the estimate -> quote -> work order -> invoice chain,
plus the pure cost calculator and document numbering they share.
"""

from .estimates import EstimateEngine
from .invoices import InvoiceEngine
from .numbering import NumberingService, with_number_retry
from .quotes import QuoteEngine
from .work_orders import WorkOrderEngine

__all__ = [
    "EstimateEngine",
    "InvoiceEngine",
    "NumberingService",
    "QuoteEngine",
    "WorkOrderEngine",
    "with_number_retry",
]
