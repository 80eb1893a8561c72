"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database and repository initialization, and the API
router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.dealroom.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.dealroom.api.v1.router import router as v1_router
from src.dealroom.config import get_settings
from src.dealroom.core.database import close_db, get_session, init_db
from src.dealroom.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.dealroom.core.redis import close_redis, get_role_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, repository and Sentry; close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # Endpoints answer 503 if the repository failed to initialize
    try:
        from src.dealroom.deals.repository import DealRepository

        app.state.deal_repository = DealRepository(get_session)
        log.info("dealroom.repository_initialized")
    except Exception:
        log.warning("dealroom.repository_init_failed", exc_info=True)
        app.state.deal_repository = None

    app.state.role_store = get_role_store()

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Deal Room API",
        version="0.1.0",
        description="Access control, deadlines and invitations for a syndicated loan deal room",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside the API router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
