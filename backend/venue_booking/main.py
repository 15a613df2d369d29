"""
Venue Booking API - Main Application Entry Point

Reservation conflict resolution and payment reconciliation:
- Slot availability across venue, coach and equipment
- Two-phase initiate/confirm flow against the payment gateway
- Resource-keyed locking around the booking critical section
- Structured logging with request correlation
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from venue_booking.core.clock import get_clock
from venue_booking.core.config import get_settings
from venue_booking.core.logging import setup_logging, get_logger
from venue_booking.core.metrics import metrics_endpoint
from venue_booking.api.router import api_router
from venue_booking.api.middleware import RequestLoggingMiddleware
from venue_booking.api.deps import get_notifier, get_payment_gateway
from venue_booking.db.session import get_engine, get_session_factory
from venue_booking.infrastructure.redis_client import RedisClient, ping_redis
from venue_booking.services.expiry_service import run_expiry_sweeper
from venue_booking.services.notification_service import drain_notifications
from venue_booking.services.reservation_service import ReservationCoordinator
from venue_booking.services.strategy_factory import get_lock_strategy

settings = get_settings()


def build_coordinator(session) -> ReservationCoordinator:
    return ReservationCoordinator(
        session,
        get_payment_gateway(),
        get_notifier(),
        get_lock_strategy(),
        clock=get_clock(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        lock_strategy=settings.LOCK_STRATEGY,
    )

    if settings.LOCK_STRATEGY == "redis":
        redis_status = await ping_redis()
        if redis_status["status"] == "connected":
            logger.info("redis_ready")
        else:
            logger.warning("redis_unavailable", message="Confirmations will fail until Redis is reachable")

    sweeper = None
    if settings.PENDING_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(
            run_expiry_sweeper(get_session_factory(), build_coordinator, settings.PENDING_SWEEP_INTERVAL_SECONDS)
        )

    yield

    # Cleanup
    if sweeper:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await drain_notifications()
    await RedisClient.close()
    await get_engine().dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Venue reservations with payment reconciliation and conflict-safe booking",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    locks = {"strategy": settings.LOCK_STRATEGY}
    if settings.LOCK_STRATEGY == "redis":
        locks["redis"] = await ping_redis()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "locks": locks,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
