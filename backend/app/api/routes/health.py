import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.core.logging import SERVICE_NAME
from app.db.base import get_session_factory
from app.db.redis import get_redis

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness for the load balancer; 503 once SIGTERM has been received."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})
    return {"status": "healthy", "service": SERVICE_NAME}


async def _database_ok() -> bool:
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        return False
    return True


async def _redis_ok() -> bool:
    try:
        await get_redis().ping()
    except Exception as exc:
        logger.error("redis_health_check_failed", error=str(exc))
        return False
    return True


@router.get("/ready")
async def readiness_check():
    """Readiness: the version store database and the job queue must both answer."""
    checks = {"database": await _database_ok(), "redis": await _redis_ok()}
    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "degraded", "service": SERVICE_NAME, "checks": checks},
    )
