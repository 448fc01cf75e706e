"""Sync orchestrator -- one connection, one invocation, one SyncResult.

Flow of ``sync(connection_id)``:
    load connection -> (Google) make the access token valid
    -> resolve/persist the provider business id -> fetch reviews
    -> reconcile -> recompute stats -> persist stats + active status

TokenError means the token manager already persisted the connection's
status; it is re-raised untouched. Any other failure is classified once via
status_for_failure, persisted, and re-raised to the trigger surface.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

import structlog

from src.reviewsync.core.monitoring import sync_duration_seconds, sync_runs_total
from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.platforms.registry import ensure_complete
from src.reviewsync.sync.errors import (
    ConnectionNotFoundError,
    ReplyNotSupportedError,
    ReviewNotFoundError,
    TokenError,
)
from src.reviewsync.sync.reconciliation import ReconciliationEngine
from src.reviewsync.sync.repository import SyncRepository
from src.reviewsync.sync.schemas import (
    CanonicalReview,
    ConnectionUpdate,
    Platform,
    PlatformConnection,
    ResponseStatus,
    ReviewUpdate,
    SyncResult,
)
from src.reviewsync.sync.stats import StatsAggregator
from src.reviewsync.sync.status import status_for_failure, status_for_success
from src.reviewsync.sync.tokens import TokenManager

logger = structlog.get_logger(__name__)


class SyncOrchestrator:
    """Runs a full sync (or posts a reply) for one platform connection.

    Args:
        repository: Storage boundary for connections and reviews.
        adapters: One adapter per Platform member.
        token_manager: Google access-token lifecycle.
        reconciliation: Upsert and enrichment engine.
        stats: Post-sync stats aggregator.
    """

    def __init__(
        self,
        repository: SyncRepository,
        adapters: dict[Platform, PlatformAdapter],
        token_manager: TokenManager,
        reconciliation: ReconciliationEngine,
        stats: StatsAggregator,
    ) -> None:
        self._repo = repository
        self._adapters = ensure_complete(adapters)
        self._tokens = token_manager
        self._reconciliation = reconciliation
        self._stats = stats

    async def _load(self, connection_id: str) -> PlatformConnection:
        connection = await self._repo.get_connection(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        return connection

    async def _prepare(self, connection: PlatformConnection) -> PlatformConnection:
        """Refresh the Google token if needed. TokenError propagates."""
        if connection.platform is Platform.GOOGLE:
            _, connection = await self._tokens.get_valid_access_token(connection)
        return connection

    async def sync(self, connection_id: str) -> SyncResult:
        """Fetch, reconcile and re-aggregate reviews for one connection.

        Raises:
            ConnectionNotFoundError: No such connection (nothing persisted).
            TokenError: Google token could not be made valid (status persisted).
            ProviderApiError / PersistenceError: Fetch or storage failure
                (``error_token_expired`` or ``error_api_call`` persisted).
        """
        connection = await self._load(connection_id)
        adapter = self._adapters[connection.platform]
        log = logger.bind(connection_id=connection.id, platform=connection.platform.value)
        log.info("sync.started", previous_status=connection.sync_status.value)
        started = time.perf_counter()

        try:
            connection = await self._prepare(connection)
        except TokenError as exc:
            log.warning("sync.token_failed", reason=exc.reason.value)
            sync_runs_total.labels(
                platform=connection.platform.value,
                status=status_for_failure(exc).value,
            ).inc()
            raise

        try:
            result = await self._run(connection, adapter, log)
        except Exception as exc:
            status = status_for_failure(exc)
            log.error("sync.failed", status=status.value, error=str(exc))
            await self._repo.update_connection(connection.id, ConnectionUpdate(sync_status=status))
            sync_runs_total.labels(platform=connection.platform.value, status=status.value).inc()
            raise
        finally:
            sync_duration_seconds.labels(platform=connection.platform.value).observe(
                time.perf_counter() - started
            )

        sync_runs_total.labels(
            platform=connection.platform.value,
            status=status_for_success().value,
        ).inc()
        return result

    async def _run(
        self,
        connection: PlatformConnection,
        adapter: PlatformAdapter,
        log: structlog.stdlib.BoundLogger,
    ) -> SyncResult:
        external_id = await adapter.resolve_external_id(connection)
        if external_id != connection.external_id:
            connection = await self._repo.update_connection(
                connection.id, ConnectionUpdate(external_id=external_id)
            )

        batch = await adapter.fetch_review_batch(connection)
        reviews = batch.reviews
        truncated = batch.truncated

        report = await self._reconciliation.reconcile(connection, reviews)
        stats = await self._stats.recompute(connection, adapter)

        await self._repo.update_connection(
            connection.id,
            ConnectionUpdate(
                total_reviews=stats.total_reviews,
                average_rating=stats.average_rating,
                sync_status=status_for_success(),
                last_synced_at=datetime.now(timezone.utc),
            ),
        )

        log.info(
            "sync.completed",
            fetched=len(reviews),
            ok=len(report.ok),
            failed=len(report.failed),
            analyzed=report.analyzed,
            alerts=report.alerts,
            total_reviews=stats.total_reviews,
            average_rating=stats.average_rating,
            stats_source=stats.source.value,
            truncated=truncated,
        )
        return SyncResult(
            success=True,
            total=len(reviews),
            analyzed=report.analyzed,
            alerts=report.alerts,
            ok=report.ok,
            failed=report.failed,
            stats_source=stats.source,
            truncated=truncated,
        )

    async def reply(self, review_id: str, text: str) -> CanonicalReview:
        """Post an owner reply to the provider and record it locally.

        Raises:
            ReviewNotFoundError: No such review.
            ReplyNotSupportedError: The platform has no reply API (Yelp).
            TokenError: Google token could not be made valid.
            ProviderApiError: The provider rejected the reply.
        """
        review = await self._repo.get_review(review_id)
        if review is None:
            raise ReviewNotFoundError(review_id)

        adapter = self._adapters[review.platform]
        if not adapter.supports_replies:
            raise ReplyNotSupportedError(
                f"{review.platform.value} does not support replying to reviews via API"
            )

        connection = await self._prepare(await self._load(review.connection_id))
        await adapter.reply_to_review(connection, review.external_id, text)

        updated = await self._repo.update_review(
            review.id,
            ReviewUpdate(
                response_status=ResponseStatus.RESPONDED,
                response_text=text,
                responded_at=datetime.now(timezone.utc),
                response_source=review.platform,
            ),
        )
        logger.info(
            "sync.reply_recorded",
            review_id=review.id,
            connection_id=connection.id,
            platform=review.platform.value,
        )
        return updated
