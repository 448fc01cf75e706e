"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, Sentry,
lifespan events for database/Redis initialization and sync-engine wiring,
and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import Response

from src.reviewsync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.reviewsync.api.v1.router import router as v1_router
from src.reviewsync.config import Settings, get_settings
from src.reviewsync.core.database import close_db, get_session, init_db
from src.reviewsync.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.reviewsync.core.redis import SyncLease, close_redis, get_redis_pool
from src.reviewsync.platforms.registry import build_adapters, build_google_client
from src.reviewsync.services.alerts import LoggingReviewAlerter
from src.reviewsync.services.analysis import LLMReviewAnalyzer
from src.reviewsync.sync.orchestrator import SyncOrchestrator
from src.reviewsync.sync.reconciliation import ReconciliationEngine
from src.reviewsync.sync.repository import SyncRepository
from src.reviewsync.sync.scheduler import ReviewSyncScheduler
from src.reviewsync.sync.stats import StatsAggregator
from src.reviewsync.sync.tokens import TokenManager


def build_orchestrator(settings: Settings, repository: SyncRepository) -> SyncOrchestrator:
    """Wire adapters, token manager, collaborators and stats into an orchestrator."""
    google_client = build_google_client(settings)
    return SyncOrchestrator(
        repository=repository,
        adapters=build_adapters(settings, google_client=google_client),
        token_manager=TokenManager(
            repository,
            google_client,
            expiry_buffer_seconds=settings.TOKEN_EXPIRY_BUFFER_SECONDS,
        ),
        reconciliation=ReconciliationEngine(
            repository,
            analyzer=LLMReviewAnalyzer(settings),
            alerter=LoggingReviewAlerter(min_urgency=settings.ALERT_MIN_URGENCY),
            collaborator_timeout=settings.COLLABORATOR_TIMEOUT_SECONDS,
        ),
        stats=StatsAggregator(repository),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and the sync engine; tear down on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    repository = SyncRepository(session_factory=get_session)
    orchestrator = build_orchestrator(settings, repository)
    lease = SyncLease(get_redis_pool(), settings.SYNC_LEASE_TTL_SECONDS)
    scheduler = ReviewSyncScheduler(
        orchestrator,
        repository,
        lease,
        interval_minutes=settings.SYNC_INTERVAL_MINUTES,
    )

    app.state.orchestrator = orchestrator
    app.state.sync_lease = lease
    app.state.scheduler = scheduler
    scheduler.start()
    log.info("sync_engine.initialized", environment=settings.ENVIRONMENT.value)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    scheduler.stop()
    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Review Sync API",
        version="0.1.0",
        description="Review-platform synchronization engine",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
