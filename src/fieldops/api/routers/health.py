# src/fieldops/api/routers/health.py
import sqlalchemy as sa
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fieldops.app_logger import get_logger

router = APIRouter(tags=["health"])
log = get_logger(__name__)


@router.get("/healthz", include_in_schema=False)
async def healthz(request: Request):
    """Liveness plus a ``SELECT 1`` against the app-scoped sessionmaker."""
    sessionmaker = getattr(request.app.state, "async_sessionmaker", None)
    if sessionmaker is None:
        return {"status": "ok", "database": "not configured"}
    try:
        async with sessionmaker() as session:
            await session.execute(sa.text("SELECT 1"))
    except Exception as exc:
        log.warning("health check: database unavailable: %s", exc)
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unavailable"})
    return {"status": "ok", "database": "ok"}
