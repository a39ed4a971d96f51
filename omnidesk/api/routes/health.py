"""Health check endpoints."""

from typing import Any

import structlog
from fastapi import APIRouter

from omnidesk.api.dependencies import PlatformDep
from omnidesk.core.config import settings
from omnidesk.models.common import utcnow

logger = structlog.get_logger()

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
@router.get("/")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "environment": settings.app_env,
    }


@router.get("/ready")
async def readiness_check(platform: PlatformDep) -> dict[str, Any]:
    """Readiness check - verifies all dependencies are available."""
    checks = {
        "storage": False,
        "scheduler": platform.scheduler.running,
    }

    try:
        checks["storage"] = await platform.storage.health_check()
    except Exception as e:
        logger.warning("Storage health check failed", error=str(e))

    all_healthy = all(checks.values())

    return {
        "status": "ready" if all_healthy else "degraded",
        "timestamp": utcnow().isoformat(),
        "checks": checks,
        "online_agents": len(platform.presence.online_agents()),
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Liveness check - basic endpoint for kubernetes probes."""
    return {"status": "alive"}
