from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tradeconnect.core.config import Settings, get_settings
from tradeconnect.db.session import get_engine
from tradeconnect.observability import add_breadcrumb

router = APIRouter(prefix="/health", tags=["health"])
logger = structlog.get_logger(__name__)


class DependencyStatus(BaseModel):
    """Health status for a downstream dependency."""

    status: Literal["ok", "error"]
    error: str | None = None

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


class HealthResponse(BaseModel):
    status: Literal["ok", "error"]
    service: str
    version: str
    timestamp: datetime
    environment: str
    metrics_enabled: bool = False
    metrics_endpoint: str | None = None
    error_tracking_enabled: bool = False

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


class DetailedHealthResponse(HealthResponse):
    """Health payload extended with Redis and database checks."""

    redis: DependencyStatus
    database: DependencyStatus


def _build_health_response(settings: Settings) -> HealthResponse:
    metrics_endpoint = (
        settings.prometheus.metrics_path if settings.prometheus.enabled else None
    )
    return HealthResponse(
        status="ok",
        service=settings.project_name,
        version=settings.project_version,
        timestamp=datetime.now(UTC),
        environment=settings.environment.value,
        metrics_enabled=settings.prometheus.enabled,
        metrics_endpoint=metrics_endpoint,
        error_tracking_enabled=settings.sentry.enabled,
    )


async def _check_redis(request: Request) -> DependencyStatus:
    redis_client: Redis | None = getattr(request.app.state, "redis", None)
    if redis_client is None:
        return DependencyStatus(status="error", error="Redis client not initialised")
    try:
        await redis_client.ping()
    except (RedisError, OSError) as exc:
        logger.error("redis_health_check_failed", error=str(exc))
        return DependencyStatus(status="error", error=str(exc))
    return DependencyStatus(status="ok")


async def _check_database() -> DependencyStatus:
    try:
        async with get_engine().connect() as connection:
            await connection.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("database_health_check_failed", error=str(exc))
        return DependencyStatus(status="error", error=str(exc))
    return DependencyStatus(status="ok")


@router.get("", summary="Service health check", response_model=HealthResponse)
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Return a lightweight health payload for readiness probes."""

    add_breadcrumb(category="health", message="Health check requested", level="info")
    return _build_health_response(settings)


@router.get(
    "/detailed",
    summary="Detailed health check with dependencies",
    response_model=DetailedHealthResponse,
)
async def detailed_health(
    request: Request, settings: Settings = Depends(get_settings)
) -> DetailedHealthResponse:
    add_breadcrumb(
        category="health",
        message="Detailed health check requested",
        level="info",
    )

    redis_status = await _check_redis(request)
    database_status = await _check_database()
    base = _build_health_response(settings)
    overall: Literal["ok", "error"] = (
        "ok"
        if redis_status.status == "ok" and database_status.status == "ok"
        else "error"
    )
    return DetailedHealthResponse(
        **base.model_dump(exclude={"status"}),
        status=overall,
        redis=redis_status,
        database=database_status,
    )
