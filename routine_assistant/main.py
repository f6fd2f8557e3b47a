"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routine_assistant.api import (
    CorrelationIdMiddleware,
    notifications_router,
    queue_router,
    routines_router,
    scheduler_router,
)
from routine_assistant.config import get_settings
from routine_assistant.database import close_database, init_database, run_migrations
from routine_assistant.exceptions import RoutineValidationError
from routine_assistant.services.client_hub import ClientHub
from routine_assistant.services.logging_service import configure_logging, get_logger
from routine_assistant.services.notification_scheduler import (
    AsyncioAlarm,
    NotificationScheduler,
)
from routine_assistant.services.notification_service import NotificationService
from routine_assistant.services.redis_service import close_redis, get_redis
from routine_assistant.services.routine_queue import QueueRegistry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    try:
        await init_database()
        await run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - routines and notifications will be unavailable",
        )

    # get_redis degrades to None; the scheduler then keeps requests in memory
    if await get_redis() is not None:
        logger.info("redis_initialized")
    else:
        logger.warning(
            "redis_initialization_failed",
            note="Continuing without Redis - scheduled notifications will not survive restarts",
        )

    hub = ClientHub()
    scheduler = NotificationScheduler(
        notifier=NotificationService(hub),
        hub=hub,
        alarm=AsyncioAlarm(),
    )
    scheduler.start()

    app.state.hub = hub
    app.state.scheduler = scheduler
    app.state.queues = QueueRegistry()

    logger.info(
        "application_started",
        log_level=settings.log_level,
        timezone=settings.timezone,
        poll_interval_seconds=settings.scheduler_poll_interval_seconds,
    )

    yield

    try:
        await scheduler.stop()
    except Exception as e:
        logger.warning("notification_scheduler_stop_failed", error=str(e))

    try:
        await close_database()
    except Exception:
        pass

    try:
        await close_redis()
    except Exception:
        pass

    logger.info("application_shutdown")


app = FastAPI(
    title="Routine Assistant",
    description="Routine tracking with background notification scheduling",
    version="0.1.0",
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report the first validation problem as a 400 with a correlation ID."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
        errors=errors,
    )

    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


@app.exception_handler(RoutineValidationError)
async def routine_validation_handler(
    request: Request, exc: RoutineValidationError
) -> JSONResponse:
    correlation_id = _correlation_id(request)
    structlog.get_logger().warning(
        "routine_validation_error", correlation_id=correlation_id, detail=str(exc)
    )
    return JSONResponse(
        status_code=422,
        content={
            "error": "Invalid routine",
            "detail": str(exc),
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(routines_router)
app.include_router(queue_router)
app.include_router(notifications_router)
app.include_router(scheduler_router)
