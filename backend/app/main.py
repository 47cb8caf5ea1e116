"""
RSVP Admission API.

Wires the admission routers, error mapping, request logging and the
optional Redis display cache into one FastAPI app. RSVP state changes go
through AdmissionOrchestrator (see services/admission_service.py).
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.errors import register_exception_handlers
from app.api.middleware import RequestLoggingMiddleware
from app.api.router import api_router
from app.core.config import get_settings
from app.core.logging import get_logger, setup_logging
from app.core.metrics import metrics_endpoint
from app.db.session import get_session_factory
from app.services.cache_service import close_redis, get_cache_stats, get_redis

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "application_starting",
        version=settings.APP_VERSION,
        max_retries=settings.ADMISSION_MAX_RETRIES,
        capacity_scales_with_guests=settings.CAPACITY_SCALES_WITH_GUESTS,
    )

    # Cache is display-only; admission works without it
    if await get_redis() is None:
        logger.warning("display_cache_disabled", redis_enabled=settings.REDIS_ENABLED)

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event RSVP admission with track groups, capacity limits and waitlists",
    lifespan=lifespan,
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
async def health_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Liveness plus database reachability. 503 when the database is down."""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        database = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.error("health_database_unreachable", error=str(e))
        database = "unreachable"

    body = {
        "status": "healthy" if database == "ok" else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": database,
        "cache": await get_cache_stats(),
    }
    code = status.HTTP_200_OK if database == "ok" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body)


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {"service": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}
