from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import Field

from fieldops.enums import PhotoType, Priority, TeamRole, WorkOrderItemType, WorkOrderStatus
from .base import APIModel, InputModel, NonNegative, Positive
from .estimates import ActivityOut

ScheduledTime = Annotated[str, Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class TeamMemberIn(InputModel):
    employee_id: uuid.UUID
    role: TeamRole = TeamRole.TECHNICIAN


class WorkOrderItemIn(InputModel):
    item_type: WorkOrderItemType = WorkOrderItemType.MATERIAL
    inventory_item_id: Optional[uuid.UUID] = None
    description: str = Field(min_length=1, max_length=500)
    unit: Optional[str] = None
    quantity: Positive
    unit_cost: NonNegative
    notes: Optional[str] = None


class AddItemIn(WorkOrderItemIn):
    is_additional: bool = True


class ChecklistItemIn(InputModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_required: bool = False


class ScheduleFields(InputModel):
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[ScheduledTime] = None
    estimated_duration: Optional[int] = Field(default=None, ge=0)


class WorkOrderCreate(ScheduleFields):
    service_request_id: uuid.UUID
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    instructions: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    team: List[TeamMemberIn] = Field(default_factory=list)
    items: List[WorkOrderItemIn] = Field(default_factory=list)
    checklist: List[ChecklistItemIn] = Field(default_factory=list)


class FromSourceIn(ScheduleFields):
    title: Optional[str] = Field(default=None, max_length=255)
    instructions: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    team: List[TeamMemberIn] = Field(default_factory=list)
    checklist: List[ChecklistItemIn] = Field(default_factory=list)


class FromQuoteIn(FromSourceIn):
    quote_id: uuid.UUID


class FromEstimateIn(FromSourceIn):
    estimate_id: uuid.UUID


class WorkOrderPatch(ScheduleFields):
    """Fields the caller leaves out are left as they are."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    instructions: Optional[str] = None
    priority: Optional[Priority] = None


class AssignTeamIn(InputModel):
    members: List[TeamMemberIn]


class ScheduleIn(InputModel):
    scheduled_date: date
    scheduled_time: Optional[ScheduledTime] = None
    estimated_duration: Optional[int] = Field(default=None, ge=0)
    reason: Optional[str] = None


class EmployeeIn(InputModel):
    employee_id: uuid.UUID
    hourly_rate: Optional[NonNegative] = None


class ClockOutIn(InputModel):
    employee_id: uuid.UUID
    break_minutes: int = Field(default=0, ge=0)
    notes: Optional[str] = None


class ChecklistUpdateIn(InputModel):
    is_completed: bool
    notes: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, max_length=1024)


class PhotoIn(InputModel):
    photo_type: PhotoType = PhotoType.OTHER
    url: str = Field(min_length=1, max_length=1024)
    caption: Optional[str] = Field(default=None, max_length=500)


class CompleteIn(InputModel):
    work_performed: str = Field(min_length=1)
    technician_notes: Optional[str] = None
    customer_signature: Optional[str] = None
    technician_signature: Optional[str] = None
    additional_cost: Optional[NonNegative] = None
    customer_feedback: Optional[str] = None
    customer_rating: Optional[int] = Field(default=None, ge=1, le=5)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class TeamMemberOut(APIModel):
    employee_id: uuid.UUID
    role: TeamRole


class WorkOrderItemOut(APIModel):
    id: uuid.UUID
    item_type: WorkOrderItemType
    inventory_item_id: Optional[uuid.UUID] = None
    description: str
    unit: Optional[str] = None
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    is_from_estimate: bool
    is_additional: bool
    notes: Optional[str] = None


class LaborEntryOut(APIModel):
    id: uuid.UUID
    employee_id: uuid.UUID
    travel_start_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    clock_in_at: datetime
    clock_out_at: Optional[datetime] = None
    break_minutes: int
    total_minutes: int
    hourly_rate: Optional[Decimal] = None


class ChecklistOut(APIModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    is_required: bool
    is_completed: bool
    completed_at: Optional[datetime] = None
    completed_by: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    photo_url: Optional[str] = None


class PhotoOut(APIModel):
    id: uuid.UUID
    photo_type: PhotoType
    url: str
    caption: Optional[str] = None
    created_at: datetime


class WorkOrderSummary(APIModel):
    id: uuid.UUID
    work_order_no: str
    service_request_id: uuid.UUID
    title: str
    status: WorkOrderStatus
    priority: Priority
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    total_cost: Decimal


class WorkOrderOut(WorkOrderSummary):
    company_id: uuid.UUID
    quote_id: Optional[uuid.UUID] = None
    estimate_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    material_cost: Decimal
    labor_cost: Decimal
    additional_cost: Decimal
    work_performed: Optional[str] = None
    technician_notes: Optional[str] = None
    signed_at: Optional[datetime] = None
    customer_feedback: Optional[str] = None
    customer_rating: Optional[int] = None
    hold_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    team: List[TeamMemberOut] = []
    items: List[WorkOrderItemOut] = []
    labor: List[LaborEntryOut] = []
    checklists: List[ChecklistOut] = []
    photos: List[PhotoOut] = []
    activities: List[ActivityOut] = []


class WorkOrderStats(APIModel):
    total: int
    by_status: dict[WorkOrderStatus, int]
    completed_today: int
    in_progress: int
