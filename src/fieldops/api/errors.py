# src/fieldops/api/errors.py
"""
Exception handlers that turn engine and database failures into 4xx responses.
"""
from __future__ import annotations

from asyncpg.exceptions import (
    CheckViolationError,
    ForeignKeyViolationError,
    NotNullViolationError,
    UniqueViolationError,
)
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from fieldops.app_logger import get_logger
from fieldops.exceptions import FieldOpsError

log = get_logger("api.errors")

_ASYNCPG_VIOLATIONS = (
    (UniqueViolationError, 409, "Unique constraint violation"),
    (ForeignKeyViolationError, 422, "Foreign key constraint failed"),
    (NotNullViolationError, 422, "Missing required field (NOT NULL violation)"),
    (CheckViolationError, 422, "Check constraint failed"),
)


def classify_integrity_error(exc: IntegrityError) -> tuple[int, str]:
    """
    Unique constraint -> 409; not-null / FK / check -> 422; anything else -> 400.
    """
    orig = getattr(exc, "orig", None)
    # the asyncpg dialect wraps the driver error; the original sits in __cause__
    for candidate in (orig, getattr(orig, "__cause__", None)):
        for violation, status_code, detail in _ASYNCPG_VIOLATIONS:
            if isinstance(candidate, violation):
                return status_code, detail

    low = str(orig or exc).lower()
    if "unique constraint" in low or "duplicate key" in low:
        return 409, "Unique constraint violation"
    if "foreign key" in low:
        return 422, "Foreign key constraint failed"
    if "not null" in low or "null value in column" in low:
        return 422, "Missing required field (NOT NULL violation)"
    if "check constraint" in low:
        return 422, "Check constraint failed"
    return 400, "Integrity error"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(FieldOpsError)
    async def fieldops_error_handler(request: Request, exc: FieldOpsError):
        log.warning(
            "%s on %s %s -> %s: %s",
            exc.__class__.__name__, request.method, request.url.path, exc.http_status, exc.message,
        )
        return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_dict()})

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        status_code, detail = classify_integrity_error(exc)
        message = str(getattr(exc, "orig", None) or exc)
        log.exception(
            "IntegrityError on %s %s -> %s: %s",
            request.method, request.url.path, status_code, message,
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": {
                    "error": "integrity_error",
                    "reason": detail,
                    "db_message": message,
                }
            },
        )
