"""
Repository for the WorkOrder aggregate (team, items, labor, checklist,
photos and the activity trail).
"""

from datetime import date, datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select

from fieldops.app_logger import get_logger
from fieldops.db.models import (
    WorkOrder,
    WorkOrderActivity,
    WorkOrderChecklist,
    WorkOrderLabor,
    WorkOrderTeamMember,
)
from fieldops.enums import Priority, WorkOrderStatus
from fieldops.exceptions import NotFoundError

from .base import BaseRepository

logger = get_logger(__name__)


class WorkOrderRepository(BaseRepository[WorkOrder]):
    model_class = WorkOrder
    entity_name = "Work order"

    async def replace_team(self, work_order: WorkOrder, members: Sequence[WorkOrderTeamMember]) -> None:
        """Full roster replacement; old rows are deleted before the new ones go in."""
        work_order.team.clear()
        await self.session.flush()
        work_order.team.extend(members)
        await self.session.flush()
        logger.debug(f"Replaced team on {work_order.work_order_no}: {len(members)} members")

    async def open_labor_entries(self, work_order_id: UUID, employee_id: UUID) -> Sequence[WorkOrderLabor]:
        """Fresh read of the employee's entries with no clock-out, inside the current transaction."""
        stmt = (
            select(WorkOrderLabor)
            .where(
                WorkOrderLabor.work_order_id == work_order_id,
                WorkOrderLabor.employee_id == employee_id,
                WorkOrderLabor.clock_out_at.is_(None),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def open_labor_entry(self, work_order_id: UUID, employee_id: UUID) -> Optional[WorkOrderLabor]:
        entries = await self.open_labor_entries(work_order_id, employee_id)
        return entries[0] if entries else None

    async def get_checklist(self, checklist_id: UUID, *, lock: bool = False) -> WorkOrderChecklist:
        stmt = select(WorkOrderChecklist).where(WorkOrderChecklist.id == checklist_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        checklist = result.scalar_one_or_none()
        if checklist is None:
            raise NotFoundError("Checklist item", checklist_id)
        return checklist

    def add_activity(
        self,
        work_order: WorkOrder,
        action: str,
        description: str,
        performed_by: Optional[UUID] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> WorkOrderActivity:
        activity = WorkOrderActivity(
            action=action,
            description=description,
            performed_by=performed_by,
            metadata_=metadata,
        )
        work_order.activities.append(activity)
        return activity

    async def list(
        self,
        *,
        company_id: Optional[UUID] = None,
        service_request_id: Optional[UUID] = None,
        status: Optional[WorkOrderStatus] = None,
        priority: Optional[Priority] = None,
        employee_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[Sequence[WorkOrder], int]:
        stmt = select(WorkOrder)
        if company_id is not None:
            stmt = stmt.where(WorkOrder.company_id == company_id)
        if service_request_id is not None:
            stmt = stmt.where(WorkOrder.service_request_id == service_request_id)
        if status is not None:
            stmt = stmt.where(WorkOrder.status == status)
        if priority is not None:
            stmt = stmt.where(WorkOrder.priority == priority)
        if employee_id is not None:
            stmt = stmt.where(
                WorkOrder.id.in_(
                    select(WorkOrderTeamMember.work_order_id).where(
                        WorkOrderTeamMember.employee_id == employee_id
                    )
                )
            )
        if date_from is not None:
            stmt = stmt.where(WorkOrder.scheduled_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(WorkOrder.scheduled_date <= date_to)
        stmt = stmt.order_by(WorkOrder.scheduled_date.desc(), WorkOrder.created_at.desc())
        return await self.paginate(stmt, page=page, limit=limit)

    async def status_counts(self, company_id: Optional[UUID] = None) -> dict[WorkOrderStatus, int]:
        stmt = select(WorkOrder.status, func.count()).group_by(WorkOrder.status)
        if company_id is not None:
            stmt = stmt.where(WorkOrder.company_id == company_id)
        result = await self.session.execute(stmt)
        return {status: int(n) for status, n in result.all()}

    async def completed_since(self, since: datetime, company_id: Optional[UUID] = None) -> int:
        stmt = select(func.count()).select_from(WorkOrder).where(
            WorkOrder.status == WorkOrderStatus.COMPLETED,
            WorkOrder.completed_at >= since,
        )
        if company_id is not None:
            stmt = stmt.where(WorkOrder.company_id == company_id)
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)

    async def for_service_request(
        self, service_request_id: UUID, status: Optional[WorkOrderStatus] = None
    ) -> Sequence[WorkOrder]:
        stmt = select(WorkOrder).where(WorkOrder.service_request_id == service_request_id)
        if status is not None:
            stmt = stmt.where(WorkOrder.status == status)
        result = await self.session.execute(stmt.order_by(WorkOrder.created_at))
        return result.scalars().all()
