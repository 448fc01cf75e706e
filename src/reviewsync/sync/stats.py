"""Stats aggregator -- recompute a connection's review count and average rating.

The provider's own aggregate is preferred (it covers reviews the API will
not list, e.g. beyond Yelp's 3). When it cannot be fetched the local
aggregate over stored reviews is used instead; this step never fails a sync.
"""

from __future__ import annotations

import structlog

from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.sync.errors import SummaryFetchError
from src.reviewsync.sync.repository import SyncRepository
from src.reviewsync.sync.schemas import PlatformConnection, PlatformStats, StatsSource

logger = structlog.get_logger(__name__)


class StatsAggregator:
    def __init__(self, repository: SyncRepository) -> None:
        self._repo = repository

    async def _live(self, connection: PlatformConnection, adapter: PlatformAdapter) -> PlatformStats:
        try:
            summary = await adapter.fetch_summary(connection)
        except Exception as exc:
            raise SummaryFetchError(str(exc)) from exc
        return PlatformStats(
            total_reviews=summary.total_reviews,
            average_rating=round(summary.average_rating, 1),
            source=StatsSource.LIVE,
        )

    async def recompute(
        self, connection: PlatformConnection, adapter: PlatformAdapter
    ) -> PlatformStats:
        """Return live provider stats, falling back to the local aggregate."""
        try:
            return await self._live(connection, adapter)
        except SummaryFetchError as exc:
            logger.warning(
                "stats.summary_fetch_failed",
                connection_id=connection.id,
                platform=connection.platform.value,
                error=str(exc),
            )

        count, mean = await self._repo.aggregate_ratings(connection.business_id, connection.platform)
        return PlatformStats(
            total_reviews=count,
            average_rating=round(mean, 1) if count else 0.0,
            source=StatsSource.LOCAL,
        )
