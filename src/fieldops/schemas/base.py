from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from fieldops.enums import AdjustmentType

T = TypeVar("T")


class APIModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        extra="ignore",
        populate_by_name=True,
    )


class InputModel(APIModel):
    """Request bodies reject unknown keys instead of silently dropping them."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


NonNegative = Annotated[Decimal, Field(ge=0)]
Positive = Annotated[Decimal, Field(gt=0)]
Reason = Annotated[str, Field(min_length=1, max_length=2000, pattern=r"\S")]


def check_adjustment(kind: Optional[AdjustmentType], value: Optional[Decimal], label: str) -> None:
    if kind == AdjustmentType.PERCENTAGE and value is not None and value > 100:
        raise ValueError(f"{label} percentage cannot exceed 100")


class Page(APIModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, rows, total: int, page: int, limit: int):
        return cls(
            data=list(rows),
            total=total,
            page=page,
            limit=limit,
            total_pages=(total + limit - 1) // limit if limit else 0,
        )


class ReasonIn(InputModel):
    reason: Reason


class OptionalReasonIn(InputModel):
    reason: Optional[str] = None


class NotesIn(InputModel):
    notes: Optional[str] = None
