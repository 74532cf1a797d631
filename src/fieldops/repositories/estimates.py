"""
Repository for the Estimate aggregate (estimate + items + labor + activity log).
"""

from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, or_, select

from fieldops.app_logger import get_logger
from fieldops.db.models import Estimate, EstimateActivity, EstimateItem, EstimateLaborItem
from fieldops.enums import EstimateStatus

from .base import BaseRepository

logger = get_logger(__name__)


class EstimateRepository(BaseRepository[Estimate]):
    model_class = Estimate
    entity_name = "Estimate"

    async def replace_items(self, estimate: Estimate, items: Sequence[EstimateItem]) -> None:
        """Full replacement of the material/equipment lines (delete, then recreate)."""
        estimate.items.clear()
        await self.session.flush()
        estimate.items.extend(items)
        logger.debug(f"Replaced items on {estimate.estimate_no}: {len(items)} lines")

    async def replace_labor_items(self, estimate: Estimate, labor_items: Sequence[EstimateLaborItem]) -> None:
        """Full replacement of the labor lines (delete, then recreate)."""
        estimate.labor_items.clear()
        await self.session.flush()
        estimate.labor_items.extend(labor_items)
        logger.debug(f"Replaced labor on {estimate.estimate_no}: {len(labor_items)} lines")

    def add_activity(
        self,
        estimate: Estimate,
        action: str,
        description: str,
        performed_by: Optional[UUID] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> EstimateActivity:
        activity = EstimateActivity(
            action=action,
            description=description,
            performed_by=performed_by,
            metadata_=metadata,
        )
        estimate.activities.append(activity)
        return activity

    async def list(
        self,
        *,
        company_id: Optional[UUID] = None,
        service_request_id: Optional[UUID] = None,
        status: Optional[EstimateStatus] = None,
        search: Optional[str] = None,
        latest_only: bool = True,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[Sequence[Estimate], int]:
        stmt = select(Estimate)
        if company_id is not None:
            stmt = stmt.where(Estimate.company_id == company_id)
        if service_request_id is not None:
            stmt = stmt.where(Estimate.service_request_id == service_request_id)
        if status is not None:
            stmt = stmt.where(Estimate.status == status)
        if latest_only:
            stmt = stmt.where(Estimate.is_latest_version.is_(True))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Estimate.estimate_no.ilike(pattern), Estimate.title.ilike(pattern)))
        stmt = stmt.order_by(Estimate.created_at.desc())
        return await self.paginate(stmt, page=page, limit=limit)

    async def family(self, root_id: UUID) -> Sequence[Estimate]:
        """Every version of an estimate family, oldest first."""
        stmt = (
            select(Estimate)
            .where(or_(Estimate.id == root_id, Estimate.parent_estimate_id == root_id))
            .order_by(Estimate.version)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def status_counts(self, company_id: Optional[UUID] = None) -> dict[EstimateStatus, int]:
        stmt = select(Estimate.status, func.count()).group_by(Estimate.status)
        if company_id is not None:
            stmt = stmt.where(Estimate.company_id == company_id)
        result = await self.session.execute(stmt)
        return {status: int(n) for status, n in result.all()}

    async def total_value(self, statuses: Sequence[EstimateStatus], company_id: Optional[UUID] = None):
        stmt = select(func.coalesce(func.sum(Estimate.total), 0)).where(Estimate.status.in_(statuses))
        if company_id is not None:
            stmt = stmt.where(Estimate.company_id == company_id)
        result = await self.session.execute(stmt)
        return result.scalar()
