from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fieldops.db.base import Base, UUIDMixin, GUID
from fieldops.enums import DocumentType
from ._helpers import enum_col


class NumberingSequence(UUIDMixin, Base):
    """Per-company counter backing invoice, payment and receipt numbers."""
    __tablename__ = "numbering_sequences"
    __table_args__ = (
        UniqueConstraint("company_id", "document_type", name="uq_numbering_sequences_company_document_type"),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    document_type: Mapped[DocumentType] = enum_col(DocumentType, nullable=False)
    # e.g. "INV-YYYY-NNNNN": YYYY is the year, the run of N the zero-padded counter
    format: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    current_value: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    current_year: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    reset_yearly: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
