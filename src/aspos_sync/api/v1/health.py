"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from aspos_sync import __version__
from aspos_sync.clients.auth import TokenProvider
from aspos_sync.clients.base import AsposApiConfig, create_http_client
from aspos_sync.config import get_settings
from aspos_sync.infrastructure.database.connection import get_db_session
from aspos_sync.infrastructure.redis import get_redis_client

router = APIRouter()
logger = structlog.get_logger()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "database": "configured",
            "redis": "configured",
            "aspos": "configured" if settings.aspos_configured else "missing credentials",
        },
    )


async def check_aspos_credentials() -> bool:
    """Live token fetch against the configured ASPOS credentials."""
    settings = get_settings()
    if not settings.aspos_configured:
        return False
    config = AsposApiConfig.from_settings(settings)
    async with create_http_client(config) as client:
        return await TokenProvider(config, client).verify()


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """
    Readiness check endpoint.

    Verifies the database, Redis and the ASPOS credentials. The sync is only
    considered usable once a token can actually be fetched.
    """
    checks: dict[str, bool] = {}

    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.warning("Database readiness check failed", error=str(e))
        checks["database"] = False

    redis_client = await get_redis_client()
    try:
        checks["redis"] = bool(redis_client) and bool(await redis_client.ping())
    except Exception:
        checks["redis"] = False

    checks["aspos"] = await check_aspos_credentials()

    return ReadinessResponse(
        ready=all(checks.values()),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.

    Simple endpoint that returns 200 if the service is running.
    """
    return {"status": "alive"}
