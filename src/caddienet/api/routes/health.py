"""Health check API routes."""
from __future__ import annotations

import time
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter

from caddienet import __version__
from caddienet.config import get_settings
from caddienet.models.schemas import HealthResponse, ServiceHealth

router = APIRouter()
logger = structlog.get_logger()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint.

    Returns overall system health and individual service status.
    """
    services: list[ServiceHealth] = []
    overall_status = "healthy"

    # Redis down means in-memory preferences and history, not an outage
    redis_health = await _check_redis()
    services.append(redis_health)
    if redis_health.status != "healthy":
        overall_status = "degraded"

    service_health = _check_assistant_service()
    services.append(service_health)
    if service_health.status != "healthy":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(UTC),
        services=services,
    )


@router.get("/health/live")
async def liveness() -> dict:
    """Liveness check.

    Returns 200 if the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness() -> dict:
    """Readiness check."""
    from caddienet.main import app_state

    if app_state.redis_client:
        try:
            await app_state.redis_client.ping()
            return {"status": "ready"}
        except Exception as e:
            logger.warning("Redis ping failed", error=str(e))

    # Without Redis we still serve requests from memory
    return {"status": "ready", "warning": "Redis unavailable"}


# =============================================================================
# Helper Functions
# =============================================================================


async def _check_redis() -> ServiceHealth:
    """Check Redis health."""
    from caddienet.main import app_state

    if not app_state.redis_client:
        return ServiceHealth(
            name="redis",
            status="unhealthy",
            message="Redis client not initialized",
        )

    try:
        start = time.perf_counter()
        await app_state.redis_client.ping()
        latency_ms = (time.perf_counter() - start) * 1000

        return ServiceHealth(
            name="redis",
            status="healthy",
            latency_ms=latency_ms,
        )
    except Exception as e:
        return ServiceHealth(
            name="redis",
            status="unhealthy",
            message=str(e),
        )


def _check_assistant_service() -> ServiceHealth:
    """Report whether the shared credential is configured."""
    if get_settings().shared_credential:
        return ServiceHealth(name="assistant_service", status="healthy")
    return ServiceHealth(
        name="assistant_service",
        status="degraded",
        message="No shared credential configured; only personal keys will work",
    )
