"""Health check endpoints."""

from typing import Any

import structlog
from fastapi import APIRouter, Request
from sqlalchemy import text

from app.config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/", response_model=dict[str, Any])
async def health_check(request: Request) -> dict[str, Any]:
    """
    Liveness probe with a database ping.
    """
    settings = get_settings()
    checks: dict[str, str] = {}

    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        checks["database"] = "unavailable"

    service = getattr(request.app.state, "execution_service", None)
    checks["execution_service"] = "ok" if service is not None else "unavailable"

    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok" if all(v == "ok" for v in checks.values()) else "degraded",
        "checks": checks,
    }
