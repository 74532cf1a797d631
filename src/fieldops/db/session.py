# src/fieldops/db/session.py
from __future__ import annotations

import os

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from fieldops.app_logger import get_logger
from fieldops.core.config import settings
from fieldops.db.base import Base

log = get_logger("db")

# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------

DATABASE_URL: str | URL = settings.DATABASE_URL

# NullPool in tests (or when explicitly requested) so connections are never
# shared across event loops.
USE_NULLPOOL = (
    os.getenv("SQLALCHEMY_NULLPOOL", "0") == "1"
    or bool(getattr(settings, "TESTING", False))
)


def build_engine(url: str | URL | None = None, **overrides) -> AsyncEngine:
    url = url or DATABASE_URL
    kwargs: dict = {"echo": bool(getattr(settings, "DB_ECHO", False))}
    if not str(url).startswith("sqlite"):
        kwargs["pool_pre_ping"] = True  # protects against stale connections
        if USE_NULLPOOL:
            kwargs["poolclass"] = NullPool
    kwargs.update(overrides)
    return create_async_engine(url, **kwargs)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, expire_on_commit=False, class_=AsyncSession)


# Built lazily so importing models never opens a driver connection
_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Process-wide engine for callers without an app-scoped one (scripts, init_db)."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # register every mapper on Base.metadata
    from fieldops.db import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("database schema ensured (%d tables)", len(Base.metadata.tables))


