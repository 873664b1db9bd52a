# backend/app/main.py

import asyncio
import logging
import os
import time

from fastapi import FastAPI, Request, status
from sqlalchemy.exc import TimeoutError as SA_TimeoutError
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from . import models  # noqa: F401  registers every table on Base.metadata
from .api import (
    api_admin,
    api_bookings,
    api_conversations,
    api_events,
    api_notifications,
    api_payments,
    api_payout,
    api_refunds,
    api_reports,
    api_reviews,
    api_tickets,
    api_webhooks,
    auth,
)
from .core.config import settings
from .core.observability import setup_logging, setup_tracer
from .database import Base, engine
from .middleware.security_headers import SecurityHeadersMiddleware
from .services.ops_scheduler import run_maintenance
from .utils.notifications import alert_scheduler_failure
from .utils.redis_cache import close_redis_client

# Configure logging before creating any loggers
setup_logging()
logger = logging.getLogger(__name__)

_BOOT_TS = time.time()

# Always use ORJSONResponse for JSON payloads
app = FastAPI(title="Ziyawa API", default_response_class=ORJSONResponse)
setup_tracer(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)
logger.info("CORS origins set to: %s", settings.CORS_ORIGINS)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1024)


@app.middleware("http")
async def catch_exceptions(request: Request, call_next):
    """Return JSON responses for HTTP errors and log them."""
    try:
        response = await call_next(request)
    except StarletteHTTPException as exc:  # return the original status and detail
        logger.error(
            "HTTP error %s at %s: %s", exc.status_code, request.url.path, exc.detail
        )
        response = ORJSONResponse(
            status_code=exc.status_code, content={"detail": exc.detail}
        )
    except SA_TimeoutError as exc:  # DB pool timeout -> 503 to reduce retry storms
        logger.error("DB timeout at %s: %s", request.url.path, str(exc))
        response = ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database busy, please retry"},
        )
    except Exception as exc:  # pragma: no cover - generic handler
        logger.exception("Unhandled error: %s", exc)
        response = ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors with details and log them for debugging."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


def _db_ping_sync() -> float:
    """Synchronous DB ping; must not run on the event loop."""
    t0 = time.perf_counter()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return (time.perf_counter() - t0) * 1000.0


@app.get("/healthz", tags=["health"])
async def healthz():
    """Readiness check: pings the database off the event loop."""
    try:
        ping_ms = await asyncio.wait_for(asyncio.to_thread(_db_ping_sync), timeout=1.0)
    except (asyncio.TimeoutError, OperationalError, SA_TimeoutError) as exc:
        logger.warning("Health check failed: %s", exc)
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "reason": type(exc).__name__},
            headers={"Cache-Control": "no-store"},
        )
    return ORJSONResponse(
        content={
            "status": "ok",
            "db_ping_ms": round(ping_ms, 2),
            "uptime_s": round(time.time() - _BOOT_TS, 1),
            "pid": os.getpid(),
        },
        headers={"Cache-Control": "no-store"},
    )


api_prefix = settings.API_PREFIX  # usually "/api"

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(api_events.router, prefix=f"{api_prefix}/events", tags=["events"])
app.include_router(api_bookings.router, prefix=f"{api_prefix}/bookings", tags=["bookings"])
app.include_router(api_payments.router, prefix=f"{api_prefix}/payments", tags=["payments"])
app.include_router(api_webhooks.router, prefix=f"{api_prefix}/webhooks", tags=["webhooks"])
app.include_router(api_tickets.router, prefix=f"{api_prefix}/tickets", tags=["tickets"])
app.include_router(api_reviews.router, prefix=f"{api_prefix}/reviews", tags=["reviews"])
app.include_router(
    api_conversations.router,
    prefix=f"{api_prefix}/conversations",
    tags=["conversations"],
)
app.include_router(
    api_notifications.router,
    prefix=f"{api_prefix}/notifications",
    tags=["notifications"],
)
app.include_router(api_reports.router, prefix=f"{api_prefix}/reports", tags=["reports"])
app.include_router(api_payout.router, prefix=f"{api_prefix}/payouts", tags=["payouts"])
app.include_router(api_refunds.router, prefix=f"{api_prefix}/refunds", tags=["refunds"])
app.include_router(api_admin.router, prefix=f"{api_prefix}/admin", tags=["admin"])


async def ops_maintenance_loop() -> None:
    """Periodic upkeep: notification retention and abandoned checkouts."""
    while True:
        await asyncio.sleep(settings.MAINTENANCE_INTERVAL_SECONDS)
        # Retry with backoff on transient DB failures
        delay = 5
        max_retries = 5
        for attempt in range(max_retries):
            try:
                summary = await asyncio.to_thread(run_maintenance)
                logger.info("Maintenance summary: %s", summary)
                break
            except OperationalError as exc:  # pragma: no cover - transient DB outage
                alert_scheduler_failure(exc)
                if attempt < max_retries - 1:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, 60)
                    continue
                # Give up for this cycle; try again next tick
                break
            except Exception as exc:  # pragma: no cover - continue running
                alert_scheduler_failure(exc)
                break


@app.on_event("startup")
def create_tables() -> None:
    """Create any missing tables; schema is owned by the models."""
    Base.metadata.create_all(bind=engine)


@app.on_event("startup")
async def start_background_tasks() -> None:
    """Launch background maintenance tasks."""
    if os.getenv("PYTEST_RUN") == "1":
        return
    asyncio.create_task(ops_maintenance_loop())


# ─── A simple root check ─────────────────────────────────────────────────────────────
@app.get("/")
async def root():
    return {"message": f"Welcome to the {settings.APP_NAME} API"}


@app.on_event("shutdown")
def shutdown_redis_client() -> None:
    """Close Redis connections when the application shuts down."""
    logger.info("Closing Redis client")
    close_redis_client()
