from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import mapped_column, Mapped

from fieldops.db.base import UTCDateTime


def status_col(enum_cls, default):
    """Closed-enum status column stored as its name (VARCHAR, no native PG enum)."""
    return mapped_column(
        sa.Enum(enum_cls, native_enum=False, length=40, validate_strings=True),
        nullable=False,
        default=default,
        index=True,
    )


def enum_col(enum_cls, nullable: bool = True, default=None):
    return mapped_column(
        sa.Enum(enum_cls, native_enum=False, length=40, validate_strings=True),
        nullable=nullable,
        default=default,
    )


def ts_col(nullable: bool = True) -> Mapped[datetime | None]:
    return mapped_column(UTCDateTime(), nullable=nullable)
