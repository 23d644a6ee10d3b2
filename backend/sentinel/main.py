"""Sentinel API — Main entry point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from sentinel.config import settings
from sentinel.core.database import async_session_factory, engine, init_models
from sentinel.core.exceptions import SentinelError, ValidationError
from sentinel.core.logging import configure_logging
from sentinel.core.middleware import RequestLoggingMiddleware
from sentinel.queue.job_queue import JobQueue
from sentinel.services.classification_service import build_classification_gateway
from sentinel.services.transaction_service import alert_job_options

logger = structlog.get_logger()


def _on_queue_error(error: Exception) -> None:
    logger.error("alert_queue_error", error=str(error))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: create tables, open the alert queue and classifier, close them on shutdown."""
    configure_logging(settings.log_level, settings.log_json)
    logger.info("Starting Sentinel API", env=settings.app_env)
    await init_models(engine)
    app.state.alert_queue = JobQueue.from_url(
        settings.redis_url,
        settings.alert_queue_name,
        default_options=alert_job_options(settings),
        on_error=_on_queue_error,
        socket_timeout=settings.redis_socket_timeout,
        max_stalled_count=settings.alert_max_stalled_count,
    )
    app.state.classification_gateway = build_classification_gateway(settings)
    yield
    logger.info("Shutting down Sentinel API")
    await app.state.alert_queue.close()
    await engine.dispose()


app = FastAPI(
    title="Sentinel API",
    description="Transaction classification and spending alerts",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

# ── Middleware ─────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# ── Errors ────────────────────────────────────────
@app.exception_handler(SentinelError)
async def sentinel_error_handler(request: Request, exc: SentinelError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, kind=exc.kind.value, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "kind": exc.kind.value},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return await sentinel_error_handler(request, ValidationError.from_pydantic(exc))


# ── Health Check ──────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check():
    """Liveness check: always returns healthy if the process is running."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/ready", tags=["system"])
async def readiness_check(request: Request):
    """Readiness check: verifies DB and Redis connectivity."""
    checks = {"database": "unknown", "redis": "unknown", "api": "ok"}
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        await request.app.state.alert_queue.ping()
        checks["redis"] = "ok"
    except SentinelError as e:
        checks["redis"] = f"error: {e.message}"

    if any(value != "ok" for value in checks.values()):
        return {"status": "degraded", "checks": checks}
    return {"status": "ready", "checks": checks}


# ── API Routes ────────────────────────────────────
from sentinel.api.v1 import alert_rules, jobs, spending, transactions  # noqa: E402

app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(alert_rules.router, prefix="/api/v1/alert-rules", tags=["alert-rules"])
app.include_router(spending.router, prefix="/api/v1/spending", tags=["spending"])
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["jobs"])
