import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
from sqlalchemy.exc import SQLAlchemyError

from . import models
from .booking_rules import BookingError
from .booking_scheduler import run_booking_scheduler
from .config import settings
from .database import engine
from .outbox_poller import run_outbox_poller
from .routers import (
    admin_router, auth_router, booking_router, message_router, notification_router,
    property_router, user_router,
)
from .storage_switch import StorageSwitch

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("tamudastay")

# Alembic owns the schema in production; this keeps a fresh dev database usable
models.Base.metadata.create_all(bind=engine)


async def _stop(task: asyncio.Task, name: str) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info(f"{name} task successfully cancelled.")
    except Exception as e:
        logger.error(f"Error during {name} shutdown: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages application startup and shutdown events.
    """
    logger.info("Starting background tasks...")

    redis_client = None
    try:
        redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8")
        await FastAPILimiter.init(redis_client)
        logger.info("FastAPILimiter initialized with Redis.")
    except Exception as e:
        logger.error(f"Failed to initialize FastAPILimiter: {e}")

    switch = app.state.storage_switch
    poller_task = asyncio.create_task(run_outbox_poller(switch))
    scheduler_task = asyncio.create_task(run_booking_scheduler(switch))

    yield  # The application is now running

    logger.info("Shutting down background tasks...")
    await _stop(poller_task, "Outbox poller")
    await _stop(scheduler_task, "Booking scheduler")
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(
    title="TamudaStay API",
    description="Vacation rental listings, availability and bookings.",
    version="1.0.0",
    lifespan=lifespan,
)

# One switch per process; every request's storage consults it
app.state.storage_switch = StorageSwitch(enabled=settings.FALLBACK_ENABLED)


# --- Error payloads: every failure is {"error": ...} ---

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part not in ("body", "query", "path")),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request data", "details": details},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "A database error occurred, please try again"},
    )


app.include_router(auth_router.router)
app.include_router(user_router.router)
app.include_router(property_router.router)
app.include_router(booking_router.router)
app.include_router(admin_router.router)
app.include_router(message_router.router)
app.include_router(notification_router.router)


@app.get("/api/health")
def health(request: Request):
    switch: StorageSwitch = request.app.state.storage_switch
    return {
        "status": "ok",
        "timestamp": models.utcnow().isoformat(),
        "storage": "fallback" if switch.tripped else "database",
    }
