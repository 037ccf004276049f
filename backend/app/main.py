import asyncio
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from redis.exceptions import RedisError

from backend.app.core.limiter import limiter
from backend.app.api import admin, ambassadors, public, realtime
from backend.app.api.deps import get_session, require_admin_token
from backend.app.core.clock import program_tz
from backend.app.core.database import async_session
from backend.app.core.exceptions import ServiceError
from backend.app.services.cache import CacheService
from backend.app.services.payouts import PayoutService, previous_period
from backend.app.services.realtime import EventBuffer, RealtimePublisher
from backend.app.services.tiers import TierService
from backend.app.core.logging import setup_logging, get_logger
from backend.app.core.settings import get_settings
from backend.app.core.metrics import PrometheusMiddleware, get_metrics_response

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

# Initialize structured logging
# Use JSON format in production
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

# Log configuration status
logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    redis_host=settings.REDIS_HOST,
    timezone=settings.TIMEZONE,
)

SCHEDULER_HOUR = 3


async def run_daily_jobs(today) -> None:
    """Monthly payout aggregation (on day 1) and tier drift correction."""
    redis = await CacheService.get_redis()
    publisher = RealtimePublisher(redis)

    async with async_session() as session:
        # 1. Aggregate last month's payouts
        if today.day == 1:
            period = previous_period(today)
            events = EventBuffer()
            try:
                payouts = await PayoutService(session, events).aggregate_period(period, as_of=today)
                await session.commit()
                await events.flush(publisher)
                logger.info("Daily scheduler: payouts aggregated", period=period, count=len(payouts))
            except (ServiceError, SQLAlchemyError) as e:
                await session.rollback()
                logger.error("Daily scheduler: payout aggregation failed", period=period, error=str(e))

        # 2. Recalculate stale tiers
        events = EventBuffer()
        try:
            result = await TierService(session, events).recalculate_all()
            await session.commit()
            await events.flush(publisher)
            if result["updated"]:
                await CacheService(redis).invalidate_ranking()
            logger.info("Daily scheduler: tiers recalculated", **result)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("Daily scheduler: tier recalculation failed", error=str(e))


async def _daily_scheduler():
    """Background task: run daily at 03:00 in the program timezone."""
    while True:
        try:
            now = datetime.now(tz=program_tz())
            target = now.replace(hour=SCHEDULER_HOUR, minute=0, second=0, microsecond=0)
            if now >= target:
                target += timedelta(days=1)
            wait_secs = (target - now).total_seconds()
            logger.info("Daily scheduler: sleeping", next_run=target.isoformat(), wait_seconds=int(wait_secs))
            await asyncio.sleep(wait_secs)

            await run_daily_jobs(datetime.now(tz=program_tz()).date())
        except asyncio.CancelledError:
            raise
        except (SQLAlchemyError, RedisError, OSError) as e:
            logger.error("Daily scheduler: unexpected error", error=str(e))
            await asyncio.sleep(60)  # Wait before retrying


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Startup: start background scheduler
    - Shutdown: cancel scheduler, close Redis
    """
    logger.info("Application starting up", version="1.0.0")
    scheduler_task = asyncio.create_task(_daily_scheduler())
    yield
    scheduler_task.cancel()
    logger.info("Application shutting down")
    await CacheService.close()


app = FastAPI(title="Ambassador Program Backend", lifespan=lifespan)

# Use shared limiter (routers use the same instance for @limiter.limit)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware must be added first (runs last on response)
ALLOWED_ORIGINS = settings.allowed_origins_list
logger.info("CORS configuration", allowed_origins=ALLOWED_ORIGINS, is_production=settings.is_production)
if not ALLOWED_ORIGINS:
    # In production, require ALLOWED_ORIGINS to be set
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    # Development fallback
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# Prometheus metrics middleware AFTER CORS (runs earlier on response)
app.add_middleware(PrometheusMiddleware)

app.include_router(public.router, prefix="/public", tags=["public"])
app.include_router(ambassadors.router, prefix="/ambassadors", tags=["ambassadors"])
app.include_router(realtime.router, prefix="/ambassadors", tags=["realtime"])
app.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database and Redis connectivity.
    """
    health_status = {
        "status": "healthy",
        "version": "1.0.0",
        "checks": {
            "database": "ok",
            "redis": "ok"
        }
    }

    # Check database connectivity
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Check Redis connectivity
    try:
        redis = await CacheService.get_redis()
        await redis.ping()
    except (RedisError, OSError) as e:
        logger.error("Redis health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics_endpoint(openmetrics: bool = False):
    """
    Prometheus metrics endpoint.

    Args:
        openmetrics: If True, return OpenMetrics format

    Returns:
        Metrics in Prometheus or OpenMetrics format
    """
    return get_metrics_response(openmetrics=openmetrics)
