"""
Trip Booking API - Main Application Entry Point

A transactional booking core for fixed-capacity trips:
- Atomic seat admission with a single conditional UPDATE
- Explicit booking state machine shared by every write path
- Idempotent payment webhook reconciliation
- Periodic expiry sweep that returns seats from abandoned payments
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripbook.core.config import get_settings
from tripbook.core.logging import setup_logging, get_logger
from tripbook.core.metrics import metrics_endpoint
from tripbook.api.errors import register_exception_handlers
from tripbook.api.router import api_router
from tripbook.api.middleware import RequestLoggingMiddleware
from tripbook.db.session import dispose_engine, get_transaction_coordinator
from tripbook.services.cache_service import get_redis, close_redis, get_cache_stats
from tripbook.services.expiry_service import ExpirySweeper

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
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    sweeper = None
    if settings.EXPIRY_SWEEP_ENABLED:
        sweeper = ExpirySweeper(
            get_transaction_coordinator(),
            interval_seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
        )
        sweeper.start()
    app.state.expiry_sweeper = sweeper

    yield

    if sweeper:
        await sweeper.stop()
    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Trip booking API with atomic seat admission and idempotent payment reconciliation",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

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
    cache_stats = await get_cache_stats()
    sweeper = getattr(app.state, "expiry_sweeper", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
        "expiry_sweeper": "running" if sweeper and sweeper.running else "stopped",
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
