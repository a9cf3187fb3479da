import logging
import os

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from starlette.responses import Response

from schedulehub.core.settings import get_settings

from ..dependencies import get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


def _metrics_enabled() -> bool:
    raw = os.getenv("METRICS_ENABLED")
    if raw is None:
        # Off by default in production; scrape through an explicit opt-in.
        return not get_settings().is_production
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@router.get("/health", include_in_schema=False)
async def health_check(request: Request) -> JSONResponse:
    container = get_container(request)
    checks = {"database": "ok", "lock_backend": container.settings.lock_backend}
    try:
        async with container.database.session() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("health.database_failed")
        checks["database"] = "error"
    healthy = checks["database"] == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", "checks": checks},
    )


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    if not _metrics_enabled():
        raise HTTPException(status_code=404)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
