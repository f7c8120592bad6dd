"""Admin API endpoints - health, metrics, system info."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from perseus.common.config import get_settings
from perseus.common.database import check_database_connection

router = APIRouter(tags=["admin"])


@router.get("/healthz")
async def liveness() -> dict[str, str]:
    """Liveness check.

    Returns 200 if the process is alive.
    """
    return {"status": "ok"}


@router.get("/healthz/ready", response_model=None)
async def readiness() -> Response | dict[str, Any]:
    """Readiness check.

    Returns 200 if the database is reachable, 503 otherwise.
    """
    if not await check_database_connection():
        return Response(
            content='{"status": "unhealthy", "database": false}',
            status_code=503,
            media_type="application/json",
        )
    return {"status": "ok", "database": True}


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


@router.get("/info")
async def info() -> dict[str, Any]:
    """Application info endpoint."""
    settings = get_settings()
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
