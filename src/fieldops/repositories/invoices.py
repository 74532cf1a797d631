"""
Repository for invoices, payments and receipts.
"""

from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select

from fieldops.app_logger import get_logger
from fieldops.db.models import Invoice, Receipt
from fieldops.enums import InvoiceStatus

from .base import BaseRepository

logger = get_logger(__name__)


class InvoiceRepository(BaseRepository[Invoice]):
    model_class = Invoice
    entity_name = "Invoice"

    async def for_service_request(self, service_request_id: UUID) -> Optional[Invoice]:
        result = await self.session.execute(
            select(Invoice).where(Invoice.service_request_id == service_request_id)
        )
        return result.scalar_one_or_none()

    async def receipts(self, invoice_id: UUID) -> Sequence[Receipt]:
        result = await self.session.execute(
            select(Receipt).where(Receipt.invoice_id == invoice_id).order_by(Receipt.created_at)
        )
        return result.scalars().all()

    async def overdue_candidates(self, today: date, company_id: Optional[UUID] = None) -> Sequence[Invoice]:
        stmt = (
            select(Invoice)
            .where(
                Invoice.status.in_([InvoiceStatus.SENT, InvoiceStatus.PARTIAL]),
                Invoice.due_date < today,
            )
            .with_for_update()
        )
        if company_id is not None:
            stmt = stmt.where(Invoice.company_id == company_id)
        result = await self.session.execute(stmt)
        return result.scalars().all()
