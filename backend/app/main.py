"""Resume Version Engine: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta

# CRITICAL ORDER: configure_structlog MUST be called before all other app imports
# to avoid the structlog cache pitfall (structlog caches the processor chain on first use).
from app.core.logging import configure_structlog
from app.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.deps import get_generation_provider
from app.api.routes import api_router
from app.core.config import get_settings
from app.core.exceptions import EngineError
from app.db import init_db, close_db, init_redis, close_redis, get_redis, get_session_factory
from app.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)
from app.services.job_orchestrator import JobOrchestrator

logger = structlog.get_logger(__name__)

# HTTP status -> error code for exceptions raised outside the service layer
_HTTP_ERROR_CODES = {
    400: "INVALID_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "INVALID_STATE",
}


def _error_response(status_code: int, code: str, message: str, debug_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": code, "message": message, "debugId": debug_id},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database and the job queue, then fail jobs a dead process left behind."""
    # /health answers 503 after SIGTERM so the load balancer drains this instance
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    # Startup
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    await init_redis()
    logger.info("redis_initialized")

    # Jobs left RUNNING by a previous process will never finish
    orchestrator = JobOrchestrator(get_session_factory(), get_generation_provider(), redis=get_redis())
    failed = await orchestrator.fail_stale_jobs(timedelta(seconds=settings.stale_job_after_seconds))
    logger.info("stale_jobs_swept", failed=len(failed))

    yield

    # Shutdown
    logger.info("shutdown_begin")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Translate service-layer errors into the shared error body."""
    debug_id = str(uuid.uuid4())
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "engine_error",
        error_code=exc.code,
        status_code=exc.http_status,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        message=exc.message,
    )
    return _error_response(exc.http_status, exc.code, exc.message, debug_id)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Auth failures, unknown routes and other framework errors, in the shared error body."""
    debug_id = str(uuid.uuid4())

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=exc.detail,
    )

    code = _HTTP_ERROR_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "INVALID_REQUEST")
    return _error_response(exc.status_code, code, str(exc.detail), debug_id)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed input is a 400 INVALID_REQUEST, like any other bad request."""
    debug_id = str(uuid.uuid4())
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]

    logger.warning(
        "request_validation_failed",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        problems=problems,
    )

    return _error_response(400, "INVALID_REQUEST", "; ".join(problems) or "Invalid request", debug_id)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything the service layer did not anticipate: logged with traceback, reported as INTERNAL_ERROR."""
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return _error_response(500, "INTERNAL_ERROR", "Internal server error", debug_id)


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(EngineError)(engine_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Immutable resume versions and AI proposal reconciliation",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, *settings.cors_allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    register_exception_handlers(app)

    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
