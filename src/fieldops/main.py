# src/fieldops/main.py
from __future__ import annotations

import logging
import logging.config
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.routing import APIRoute

from fieldops.api.errors import register_exception_handlers
from fieldops.api.routers import estimates, health, invoices, quotes, work_orders
from fieldops.core.config import settings
from fieldops.db.session import build_engine, build_sessionmaker, init_db
from fieldops.repositories import unit_of_work_factory

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            # include fields you want searchable in ES
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(process)d %(module)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "":               {"handlers": ["console"], "level": "INFO"},
        "uvicorn":        {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.error":  {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "fieldops":       {"handlers": ["console"], "level": settings.LOG_LEVEL.upper(), "propagate": False},
    },
}

logging.config.dictConfig(LOGGING)
log = logging.getLogger("fieldops.main")

DOCUMENT_ROUTERS = (estimates.router, quotes.router, work_orders.router, invoices.router)


def generate_unique_id(route: APIRoute) -> str:
    methods = "_".join(sorted((route.methods or []), key=str.lower)).lower()
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").replace("-", "_").strip("_")
    tag = (route.tags[0] if route.tags else "default").lower().replace(" ", "_")
    return f"{tag}__{methods}__{path}"


def create_app(database_url: Optional[str] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Binds the DB engine, sessionmaker and unit-of-work factory to this loop.
        """
        app.state.db_engine = build_engine(database_url or settings.DATABASE_URL)
        app.state.async_sessionmaker = build_sessionmaker(app.state.db_engine)
        app.state.uow_factory = unit_of_work_factory(app.state.async_sessionmaker)
        await init_db(app.state.db_engine)
        log.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
        try:
            yield
        finally:
            await app.state.db_engine.dispose()
            log.info("database engine disposed")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        generate_unique_id_function=generate_unique_id,
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    app.include_router(health.router)
    for router in DOCUMENT_ROUTERS:
        app.include_router(router, prefix="/api")
    return app


app = create_app()
