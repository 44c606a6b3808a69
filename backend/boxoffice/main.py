"""
Boxoffice Checkout API - Main Application Entry Point

Cart, checkout and order materialization for event tickets plus flight,
bus and hotel lines:
- Seat holds with all-or-nothing reservation and TTL expiry
- Idempotent checkout completion guarded by conditional state transitions
- Guest checkout with confirmation-code ticket retrieval
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boxoffice.api.deps import get_email_client
from boxoffice.api.errors import register_exception_handlers
from boxoffice.api.middleware import RequestLoggingMiddleware
from boxoffice.api.router import api_router
from boxoffice.core.clock import get_clock
from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger, setup_logging
from boxoffice.core.metrics import metrics_endpoint
from boxoffice.db.session import AsyncSessionLocal
from boxoffice.infrastructure.redis_client import close_redis, get_redis, redis_status
from boxoffice.services.notification_service import Notifier, get_dispatcher, reset_dispatcher
from boxoffice.services.strategy_factory import get_checkout_guard, reset_checkout_guard
from boxoffice.services.sweeper import TTLSweeper

settings = get_settings()


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
        checkout_guard=settings.CHECKOUT_GUARD,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Checkout guard runs without Redis")
    await get_checkout_guard()

    dispatcher = get_dispatcher()
    dispatcher.start()

    sweeper = None
    if settings.SWEEPER_ENABLED:
        notifier = Notifier(dispatcher, get_email_client(), AsyncSessionLocal)
        sweeper = TTLSweeper(AsyncSessionLocal, get_clock(), notifier)
        sweeper.start()

    yield

    if sweeper is not None:
        await sweeper.stop()
    await dispatcher.stop()
    reset_dispatcher()
    reset_checkout_guard()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Cart, checkout and order materialization with concurrency-safe inventory",
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

app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": await redis_status(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
