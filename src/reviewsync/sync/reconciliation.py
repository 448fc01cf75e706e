"""Reconciliation engine -- merge normalized provider reviews into canonical storage.

Reviews are processed strictly in order, one at a time. Each review is
upserted on (business_id, platform, external_id); a review whose enrichment
has not yet succeeded is sent to the analysis collaborator and, once
enriched, to the alerting collaborator.

Enrichment is tracked with an explicit processing_status, so a review whose
analysis failed or timed out is picked up again by the next sync, while an
already processed review is never analyzed (or alerted) twice.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from src.reviewsync.core.monitoring import reviews_reconciled_total, track_analysis_call
from src.reviewsync.services.alerts import ReviewAlerter
from src.reviewsync.services.analysis import ReviewAnalyzer
from src.reviewsync.sync.errors import AnalysisError, PersistenceError
from src.reviewsync.sync.repository import SyncRepository
from src.reviewsync.sync.schemas import (
    AnalysisResult,
    CanonicalReview,
    NormalizedReview,
    PlatformConnection,
    ProcessingStatus,
    ReconciliationReport,
    ReviewFailure,
    ReviewUpdate,
    ReviewUpsert,
)

logger = structlog.get_logger(__name__)


class ReconciliationEngine:
    """Upserts normalized reviews and drives per-review enrichment.

    Args:
        repository: Canonical review storage.
        analyzer: Analysis collaborator.
        alerter: Alerting collaborator.
        collaborator_timeout: Seconds allowed for each analyze/notify call.
    """

    def __init__(
        self,
        repository: SyncRepository,
        analyzer: ReviewAnalyzer,
        alerter: ReviewAlerter,
        collaborator_timeout: float = 45.0,
    ) -> None:
        self._repo = repository
        self._analyzer = analyzer
        self._alerter = alerter
        self._timeout = collaborator_timeout

    async def reconcile(
        self,
        connection: PlatformConnection,
        reviews: list[NormalizedReview],
    ) -> ReconciliationReport:
        """Reconcile one fetched batch for a connection.

        A storage failure on one review is recorded in ``failed`` and the
        loop moves on; it never aborts the batch.
        """
        report = ReconciliationReport()
        platform = connection.platform.value

        for item in reviews:
            try:
                review = await self._repo.upsert_review(
                    ReviewUpsert(
                        business_id=connection.business_id,
                        platform=connection.platform,
                        connection_id=connection.id,
                        **item.model_dump(),
                    )
                )
            except PersistenceError as exc:
                logger.error(
                    "reconcile.upsert_failed",
                    connection_id=connection.id,
                    external_id=item.external_id,
                    error=str(exc),
                )
                report.failed.append(ReviewFailure(external_id=item.external_id, reason=str(exc)))
                reviews_reconciled_total.labels(platform=platform, result="failed").inc()
                continue

            report.ok.append(item.external_id)
            reviews_reconciled_total.labels(platform=platform, result="ok").inc()

            if not review.needs_analysis:
                continue

            enriched = await self._enrich(review)
            if enriched is None:
                continue
            report.analyzed += 1

            if await self._notify(enriched):
                report.alerts += 1

        logger.info(
            "reconcile.completed",
            connection_id=connection.id,
            platform=platform,
            ok=len(report.ok),
            failed=len(report.failed),
            analyzed=report.analyzed,
            alerts=report.alerts,
        )
        return report

    async def _analyze(self, review: CanonicalReview) -> AnalysisResult:
        async with track_analysis_call():
            try:
                result = await asyncio.wait_for(self._analyzer.analyze(review), self._timeout)
            except asyncio.TimeoutError as exc:
                raise AnalysisError(f"analysis timed out after {self._timeout}s") from exc
            except AnalysisError:
                raise
            except Exception as exc:
                raise AnalysisError(str(exc)) from exc
            if result is None:
                raise AnalysisError("analyzer returned no result")
            return result

    async def _enrich(self, review: CanonicalReview) -> CanonicalReview | None:
        """Analyze and persist enrichment. None when the review stays unprocessed."""
        try:
            result = await self._analyze(review)
        except AnalysisError as exc:
            logger.warning(
                "reconcile.analysis_failed",
                review_id=review.id,
                external_id=review.external_id,
                error=str(exc),
            )
            await self._mark_failed(review)
            return None

        try:
            return await self._repo.update_review(
                review.id,
                ReviewUpdate(
                    sentiment=result.sentiment.value,
                    urgency_score=result.urgency_score,
                    topics=result.topics,
                    suggested_reply=result.suggested_reply,
                    processing_status=ProcessingStatus.PROCESSED,
                    analyzed_at=datetime.now(timezone.utc),
                ),
            )
        except PersistenceError as exc:
            logger.error(
                "reconcile.enrichment_write_failed",
                review_id=review.id,
                error=str(exc),
            )
            return None

    async def _mark_failed(self, review: CanonicalReview) -> None:
        try:
            await self._repo.update_review(
                review.id, ReviewUpdate(processing_status=ProcessingStatus.FAILED)
            )
        except PersistenceError as exc:
            # Row stays unprocessed, which is retried the same way.
            logger.error("reconcile.status_write_failed", review_id=review.id, error=str(exc))

    async def _notify(self, review: CanonicalReview) -> bool:
        """Hand an enriched review to the alerter. A failure never undoes enrichment."""
        try:
            await asyncio.wait_for(self._alerter.notify(review), self._timeout)
        except Exception as exc:
            logger.error("reconcile.alert_failed", review_id=review.id, error=str(exc))
            return False
        return True
