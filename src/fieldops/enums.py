"""Closed status and type enumerations shared by models, schemas and engines."""
from __future__ import annotations

from enum import Enum


class StrEnum(str, Enum):
    def __str__(self) -> str:
        return self.value


class AdjustmentType(StrEnum):
    """Markup, profit margin and discount are all PERCENTAGE or FIXED."""
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class ServiceRequestStatus(StrEnum):
    NEW = "NEW"
    ASSIGNED = "ASSIGNED"
    ESTIMATION_IN_PROGRESS = "ESTIMATION_IN_PROGRESS"
    ESTIMATE_PENDING_APPROVAL = "ESTIMATE_PENDING_APPROVAL"
    ESTIMATE_APPROVED = "ESTIMATE_APPROVED"
    QUOTATION_IN_PROGRESS = "QUOTATION_IN_PROGRESS"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    INVOICED = "INVOICED"
    PAID = "PAID"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class Priority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class EstimateStatus(StrEnum):
    DRAFT = "DRAFT"
    PENDING_MANAGER_APPROVAL = "PENDING_MANAGER_APPROVAL"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONVERTED = "CONVERTED"
    CANCELLED = "CANCELLED"


class EstimateItemType(StrEnum):
    MATERIAL = "MATERIAL"
    EQUIPMENT = "EQUIPMENT"
    CONSUMABLE = "CONSUMABLE"
    TRANSPORT = "TRANSPORT"
    OTHER = "OTHER"


class LaborRateType(StrEnum):
    HOURLY = "HOURLY"
    DAILY = "DAILY"


class QuoteStatus(StrEnum):
    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    SENT = "SENT"
    VIEWED = "VIEWED"
    REVISED = "REVISED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"
    CANCELLED = "CANCELLED"


class QuoteItemType(StrEnum):
    MATERIAL = "MATERIAL"
    LABOR = "LABOR"
    EQUIPMENT = "EQUIPMENT"
    SERVICE = "SERVICE"
    OTHER = "OTHER"


class WorkOrderStatus(StrEnum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    EN_ROUTE = "EN_ROUTE"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REQUIRES_FOLLOWUP = "REQUIRES_FOLLOWUP"


class WorkOrderItemType(StrEnum):
    MATERIAL = "MATERIAL"
    LABOR = "LABOR"
    EQUIPMENT = "EQUIPMENT"
    OTHER = "OTHER"


class TeamRole(StrEnum):
    LEAD = "LEAD"
    TECHNICIAN = "TECHNICIAN"
    HELPER = "HELPER"


class PhotoType(StrEnum):
    BEFORE = "BEFORE"
    DURING = "DURING"
    AFTER = "AFTER"
    ISSUE = "ISSUE"
    SIGNATURE = "SIGNATURE"
    OTHER = "OTHER"


class InvoiceStatus(StrEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PaymentMethod(StrEnum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    ONLINE = "ONLINE"


class DocumentType(StrEnum):
    ESTIMATE = "ESTIMATE"
    QUOTE = "QUOTE"
    WORK_ORDER = "WORK_ORDER"
    INVOICE = "INVOICE"
    PAYMENT = "PAYMENT"
    RECEIPT = "RECEIPT"
