"""FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .database import ensure_database_reachable, get_db
from .dependencies import get_pending_cache
from .error_envelope import register_error_handlers
from .events import build_event_sink
from .schemas import HealthCheckResponse
from .routers import (
    audit,
    compatibility,
    customers,
    licensing,
    notifications,
    pending_updates,
    products,
    rollouts,
    upgrade_paths,
    versions,
)
from .services.pending_cache import PendingUpdatesCache, build_pending_cache

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

ROUTERS = (
    products.router,
    versions.router,
    compatibility.router,
    upgrade_paths.router,
    customers.router,
    pending_updates.router,
    licensing.router,
    rollouts.router,
    notifications.router,
    audit.router,
)


def create_app(*, check_database: bool = True, pending_cache: Optional[PendingUpdatesCache] = None) -> FastAPI:
    """Build the API; components are created here and shared through ``app.state``."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if check_database:
            ensure_database_reachable()
            logger.info("startup.database_ok env=%s", settings.ENV)
        yield

    application = FastAPI(
        title=settings.APP_NAME,
        version=API_VERSION,
        description="Back-office API for product versions, compatibility, upgrade paths, pending updates and license seats",
        lifespan=lifespan,
    )

    if settings.ENV.lower() == "production" and any(origin == "*" for origin in settings.cors_origins):
        raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard).")

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    application.state.pending_cache = pending_cache
    application.state.event_sink = build_event_sink(pending_cache)
    register_error_handlers(application)

    for router in ROUTERS:
        application.include_router(router, prefix="/api/v1")

    @application.get("/api/v1/system/health", response_model=HealthCheckResponse)
    def health_check(
        db: Session = Depends(get_db),
        cache: Optional[PendingUpdatesCache] = Depends(get_pending_cache),
    ):
        """Health check endpoint."""
        database = "ok"
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("health.database_failed")
            database = "error"

        redis_status = "disabled"
        if cache is not None:
            try:
                redis_status = "ok" if cache.ping() else "error"
            except RedisError:
                logger.exception("health.redis_failed")
                redis_status = "error"

        return {
            "status": "ok" if database == "ok" else "degraded",
            "version": API_VERSION,
            "database": database,
            "redis": redis_status,
        }

    return application


app = create_app(pending_cache=build_pending_cache())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("update_manager.main:app", host="0.0.0.0", port=settings.PORT, reload=settings.DEBUG)
