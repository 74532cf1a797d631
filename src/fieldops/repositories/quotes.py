"""
Repository for the Quote aggregate.
"""

from datetime import date
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import select

from fieldops.app_logger import get_logger
from fieldops.db.models import Quote, QuoteActivity
from fieldops.enums import QuoteStatus

from .base import BaseRepository

logger = get_logger(__name__)


class QuoteRepository(BaseRepository[Quote]):
    model_class = Quote
    entity_name = "Quote"

    def add_activity(
        self,
        quote: Quote,
        action: str,
        description: str,
        performed_by: Optional[UUID] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> QuoteActivity:
        activity = QuoteActivity(
            action=action,
            description=description,
            performed_by=performed_by,
            metadata_=metadata,
        )
        quote.activities.append(activity)
        return activity

    async def list(
        self,
        *,
        company_id: Optional[UUID] = None,
        service_request_id: Optional[UUID] = None,
        status: Optional[QuoteStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[Sequence[Quote], int]:
        stmt = select(Quote)
        if company_id is not None:
            stmt = stmt.where(Quote.company_id == company_id)
        if service_request_id is not None:
            stmt = stmt.where(Quote.service_request_id == service_request_id)
        if status is not None:
            stmt = stmt.where(Quote.status == status)
        stmt = stmt.order_by(Quote.created_at.desc())
        return await self.paginate(stmt, page=page, limit=limit)

    async def expiry_candidates(self, today: date, company_id: Optional[UUID] = None) -> Sequence[Quote]:
        stmt = (
            select(Quote)
            .where(
                Quote.status.in_([QuoteStatus.SENT, QuoteStatus.VIEWED]),
                Quote.valid_until < today,
            )
            .with_for_update()
        )
        if company_id is not None:
            stmt = stmt.where(Quote.company_id == company_id)
        result = await self.session.execute(stmt)
        return result.scalars().all()
