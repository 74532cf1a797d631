"""
Persistence side of document numbering: prefix scans and atomic counters.
"""

from typing import Optional
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy import and_, case, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from fieldops.app_logger import get_logger
from fieldops.db.base import utcnow
from fieldops.db.models import NumberingSequence
from fieldops.enums import DocumentType

logger = get_logger(__name__)


class NumberingRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def highest_number(
        self,
        number_column: InstrumentedAttribute,
        company_column: InstrumentedAttribute,
        company_id: UUID,
        prefix: str,
    ) -> Optional[str]:
        """
        Highest plain number starting with ``prefix`` for the company.

        Anything with a further "-" after the prefix (revision suffixes such
        as ``-V2``) is not part of the sequence and is skipped. Longer strings
        sort first so 10000 beats 9999.
        """
        stmt = (
            select(number_column)
            .where(
                company_column == company_id,
                number_column.like(f"{prefix}%"),
                ~number_column.like(f"{prefix}%-%"),
            )
            .order_by(sa.func.length(number_column).desc(), number_column.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def increment(self, company_id: UUID, document_type: DocumentType, year: int) -> Optional[tuple[str, int]]:
        """
        Atomically bump the company's counter and return (format, new value).

        One UPDATE ... RETURNING statement; the counter restarts at 1 when the
        calendar year rolls over on a yearly-reset sequence. Returns None when
        the company has no counter configured for this document type.
        """
        seq = NumberingSequence
        stmt = (
            update(seq)
            .where(seq.company_id == company_id, seq.document_type == document_type)
            .values(
                current_value=case(
                    (and_(seq.reset_yearly.is_(True), seq.current_year != year), 1),
                    else_=seq.current_value + 1,
                ),
                current_year=year,
            )
            .returning(seq.format, seq.current_value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        return row[0], int(row[1])

    async def get_sequence(self, company_id: UUID, document_type: DocumentType) -> Optional[NumberingSequence]:
        result = await self.session.execute(
            select(NumberingSequence).where(
                NumberingSequence.company_id == company_id,
                NumberingSequence.document_type == document_type,
            )
        )
        return result.scalar_one_or_none()

    async def configure(
        self,
        company_id: UUID,
        document_type: DocumentType,
        format: str,
        start_at: int = 0,
        reset_yearly: bool = True,
    ) -> NumberingSequence:
        sequence = await self.get_sequence(company_id, document_type)
        if sequence is None:
            sequence = NumberingSequence(
                company_id=company_id,
                document_type=document_type,
                format=format,
                current_value=start_at,
                current_year=utcnow().year,
                reset_yearly=reset_yearly,
            )
            self.session.add(sequence)
        else:
            sequence.format = format
            sequence.reset_yearly = reset_yearly
        await self.session.flush()
        logger.debug(f"Configured {document_type} numbering for company {company_id}: {format}")
        return sequence
