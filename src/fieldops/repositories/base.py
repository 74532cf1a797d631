"""
Base repository class with common persistence operations.

Repositories never commit: the enclosing ``UnitOfWork`` owns the
transaction, so several aggregates can change atomically.
"""

from typing import Any, Generic, Protocol, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from fieldops.app_logger import get_logger
from fieldops.exceptions import NotFoundError

logger = get_logger(__name__)


# Generic type for model classes with id attribute
class HasId(Protocol):
    id: Any


ModelType = TypeVar("ModelType", bound=HasId)


class BaseRepository(Generic[ModelType]):
    """
    Base repository providing common operations for one aggregate root.

    Subclasses set ``model_class`` and ``entity_name`` (used in NotFound
    messages).
    """

    model_class: type[ModelType]
    entity_name: str = "Record"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.model_name = self.model_class.__name__

    async def add(self, instance: ModelType) -> ModelType:
        """Stage a new instance and flush so constraint violations surface here."""
        self.session.add(instance)
        await self.session.flush()
        logger.debug(f"Created {self.model_name}: {instance.id}")
        return instance

    async def get_by_id(self, id: UUID, *, lock: bool = False) -> ModelType | None:
        """
        Load by primary key.

        With ``lock=True`` the row is re-read with SELECT ... FOR UPDATE (a no-op
        on SQLite) and the in-session copy refreshed, so status preconditions are
        checked against the latest committed state inside the writing transaction.
        """
        stmt = select(self.model_class).where(self.model_class.id == id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        instance = result.scalar_one_or_none()

        if instance is None:
            logger.debug(f"{self.model_name} not found: {id}")
        return instance

    async def require(self, id: UUID, *, lock: bool = False) -> ModelType:
        instance = await self.get_by_id(id, lock=lock)
        if instance is None:
            raise NotFoundError(self.entity_name, id)
        return instance

    async def delete(self, instance: ModelType) -> None:
        await self.session.delete(instance)
        await self.session.flush()
        logger.debug(f"Deleted {self.model_name}: {instance.id}")

    async def count(self, stmt: Select | None = None) -> int:
        if stmt is None:
            stmt = select(self.model_class)
        result = await self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        return int(result.scalar() or 0)

    async def paginate(
        self, stmt: Select, page: int = 1, limit: int = 20
    ) -> tuple[Sequence[ModelType], int]:
        """Run ``stmt`` for one page; returns (rows, total matching rows)."""
        total = await self.count(stmt)
        page = max(page, 1)
        result = await self.session.execute(stmt.offset((page - 1) * limit).limit(limit))
        rows = result.scalars().unique().all()
        logger.debug(f"Retrieved {len(rows)} of {total} {self.model_name} rows (page {page})")
        return rows, total
