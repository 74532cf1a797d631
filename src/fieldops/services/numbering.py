"""
Document numbering.

Estimates, quotes and work orders are numbered ``{PREFIX}-{YYYY}-{NNNN}`` by
scanning for the highest existing number of the year. The scan can race, so
inserts carrying such a number run under ``with_number_retry``, which
reruns the whole unit of work when the number's unique constraint fires.

Invoices, payments and receipts use a per-company counter row incremented
in a single UPDATE ... RETURNING statement, formatted through a template
such as ``INV-YYYY-NNNNN``. Companies without a counter row get a year plus
a short random suffix instead.
"""
from __future__ import annotations

import re
import secrets
import string
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from fieldops.app_logger import get_logger
from fieldops.core.config import settings
from fieldops.db.base import utcnow
from fieldops.db.models import Estimate, Quote, WorkOrder
from fieldops.enums import DocumentType
from fieldops.exceptions import NumberingCollisionError, ValidationError
from fieldops.repositories import UnitOfWork

log = get_logger(__name__)

T = TypeVar("T")

PREFIXES = {
    DocumentType.ESTIMATE: "EST",
    DocumentType.QUOTE: "QUO",
    DocumentType.WORK_ORDER: "WO",
    DocumentType.INVOICE: "INV",
    DocumentType.PAYMENT: "PAY",
    DocumentType.RECEIPT: "RCP",
}

# document type -> (number column, company column)
SCANNED = {
    DocumentType.ESTIMATE: (Estimate.estimate_no, Estimate.company_id),
    DocumentType.QUOTE: (Quote.quote_no, Quote.company_id),
    DocumentType.WORK_ORDER: (WorkOrder.work_order_no, WorkOrder.company_id),
}

NUMBER_COLUMNS = {
    DocumentType.ESTIMATE: "estimate_no",
    DocumentType.QUOTE: "quote_no",
    DocumentType.WORK_ORDER: "work_order_no",
    DocumentType.INVOICE: "invoice_no",
    DocumentType.PAYMENT: "payment_no",
    DocumentType.RECEIPT: "receipt_no",
}

SCAN_PADDING = 4
FALLBACK_SUFFIX_LENGTH = 6
_N_RUN = re.compile(r"N+")
_ALPHABET = string.ascii_uppercase + string.digits


def validate_format(fmt: str) -> str:
    if "YYYY" not in fmt:
        raise ValidationError("Number format must contain YYYY", field="format")
    if not _N_RUN.search(fmt.replace("YYYY", "")):
        raise ValidationError("Number format must contain a run of N characters", field="format")
    return fmt


def format_number(fmt: str, year: int, value: int) -> str:
    """
    Render a counter template: ``YYYY`` becomes the year and the last run of
    ``N`` the value zero-padded to the run's length (longer values are kept whole).

    >>> format_number("INV-YYYY-NNNNN", 2025, 42)
    'INV-2025-00042'
    """
    rendered = fmt.replace("YYYY", str(year))
    runs = list(_N_RUN.finditer(rendered))
    if not runs:
        raise ValidationError(f"Number format {fmt!r} has no N run", field="format")
    last = runs[-1]
    width = last.end() - last.start()
    return f"{rendered[:last.start()]}{str(value).zfill(width)}{rendered[last.end():]}"


def next_in_sequence(highest: Optional[str], prefix: str) -> int:
    if not highest:
        return 1
    tail = highest[len(prefix):]
    return int(tail) + 1 if tail.isdigit() else 1


class NumberingService:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    async def next(self, uow: UnitOfWork, document_type: DocumentType, company_id: UUID) -> str:
        year = self._clock().year
        if document_type in SCANNED:
            return await self._scan(uow, document_type, company_id, year)
        return await self._counter(uow, document_type, company_id, year)

    async def _scan(self, uow: UnitOfWork, document_type: DocumentType, company_id: UUID, year: int) -> str:
        prefix = f"{PREFIXES[document_type]}-{year}-"
        number_column, company_column = SCANNED[document_type]
        highest = await uow.numbering.highest_number(number_column, company_column, company_id, prefix)
        sequence = next_in_sequence(highest, prefix)
        return f"{prefix}{str(sequence).zfill(SCAN_PADDING)}"

    async def _counter(self, uow: UnitOfWork, document_type: DocumentType, company_id: UUID, year: int) -> str:
        bumped = await uow.numbering.increment(company_id, document_type, year)
        if bumped is None:
            suffix = "".join(secrets.choice(_ALPHABET) for _ in range(FALLBACK_SUFFIX_LENGTH))
            number = f"{PREFIXES[document_type]}-{year}-{suffix}"
            log.debug("no %s counter for company %s, using %s", document_type.value, company_id, number)
            return number
        fmt, value = bumped
        return format_number(fmt, year, value)

    async def configure(
        self,
        uow: UnitOfWork,
        company_id: UUID,
        document_type: DocumentType,
        fmt: str,
        start_at: int = 0,
        reset_yearly: bool = True,
    ):
        if document_type in SCANNED:
            raise ValidationError(
                f"{document_type.value} numbers are derived by scan and take no counter",
                field="document_type",
            )
        return await uow.numbering.configure(
            company_id, document_type, validate_format(fmt), start_at=start_at, reset_yearly=reset_yearly
        )


def is_number_collision(exc: IntegrityError, number_column: str) -> bool:
    message = str(getattr(exc, "orig", None) or exc)
    return number_column in message


async def with_number_retry(
    operation: Callable[[], Awaitable[T]],
    document_type: DocumentType,
    attempts: Optional[int] = None,
) -> T:
    """
    Run ``operation`` (a whole unit of work) and rerun it when the insert
    trips the unique constraint on the document's number column.
    """
    attempts = attempts or settings.NUMBER_COLLISION_RETRIES
    number_column = NUMBER_COLUMNS[document_type]
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except IntegrityError as exc:
            if not is_number_collision(exc, number_column):
                raise
            if attempt == attempts:
                log.error("%s number collision persisted after %d attempts", document_type.value, attempts)
                raise NumberingCollisionError(document_type.value, attempts, cause=exc) from exc
            log.warning(
                "%s number collision on attempt %d/%d, regenerating",
                document_type.value, attempt, attempts,
            )
    raise NumberingCollisionError(document_type.value, attempts)
