# src/fieldops/db/models/__init__.py
from .service_requests import ServiceRequest, SiteVisit
from .estimates import Estimate, EstimateItem, EstimateLaborItem, EstimateActivity
from .quotes import Quote, QuoteItem, QuoteActivity
from .work_orders import (
    WorkOrder,
    WorkOrderTeamMember,
    WorkOrderItem,
    WorkOrderLabor,
    WorkOrderChecklist,
    WorkOrderPhoto,
    WorkOrderActivity,
)
from .invoices import Invoice, InvoiceItem, Payment, Receipt
from .numbering import NumberingSequence

__all__ = [
    "ServiceRequest", "SiteVisit",
    "Estimate", "EstimateItem", "EstimateLaborItem", "EstimateActivity",
    "Quote", "QuoteItem", "QuoteActivity",
    "WorkOrder", "WorkOrderTeamMember", "WorkOrderItem", "WorkOrderLabor",
    "WorkOrderChecklist", "WorkOrderPhoto", "WorkOrderActivity",
    "Invoice", "InvoiceItem", "Payment", "Receipt",
    "NumberingSequence",
]
