"""Tests for post-sync stats recomputation."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.sync.errors import PersistenceError, ProviderApiError, ProviderErrorCategory
from src.reviewsync.sync.schemas import (
    CanonicalReview,
    NormalizedSummary,
    Platform,
    StatsSource,
)
from src.reviewsync.sync.stats import StatsAggregator


@pytest.fixture
def aggregator(repo):
    return StatsAggregator(repo)


@pytest.fixture
def adapter():
    return AsyncMock(spec=PlatformAdapter)


def _store(repo, connection, external_id: str, rating: int) -> None:
    review = CanonicalReview(
        id=f"id-{external_id}",
        business_id=connection.business_id,
        platform=connection.platform,
        connection_id=connection.id,
        external_id=external_id,
        author_name="A",
        rating=rating,
        published_at="2026-01-01T00:00:00Z",
    )
    repo.reviews[review.id] = review


class TestRecompute:
    async def test_live_summary_preferred(self, aggregator, adapter, make_connection):
        adapter.fetch_summary.return_value = NormalizedSummary(average_rating=4.36, total_reviews=120)

        stats = await aggregator.recompute(make_connection(Platform.YELP), adapter)

        assert stats.source is StatsSource.LIVE
        assert stats.total_reviews == 120
        assert stats.average_rating == 4.4

    async def test_falls_back_to_local_aggregate(self, aggregator, adapter, make_connection, repo):
        adapter.fetch_summary.side_effect = ProviderApiError(
            "yelp", "boom", status_code=500, category=ProviderErrorCategory.SERVER
        )
        connection = make_connection(Platform.YELP)
        for external_id, rating in (("a", 5), ("b", 4), ("c", 4)):
            _store(repo, connection, external_id, rating)

        stats = await aggregator.recompute(connection, adapter)

        assert stats.source is StatsSource.LOCAL
        assert stats.total_reviews == 3
        assert stats.average_rating == 4.3

    async def test_local_aggregate_counts_unrecognized_ratings(self, aggregator, adapter, make_connection, repo):
        adapter.fetch_summary.side_effect = RuntimeError("no summary")
        connection = make_connection(Platform.GOOGLE)
        _store(repo, connection, "a", 5)
        _store(repo, connection, "b", 0)

        stats = await aggregator.recompute(connection, adapter)

        assert (stats.total_reviews, stats.average_rating) == (2, 2.5)

    async def test_local_aggregate_scoped_to_platform(self, aggregator, adapter, make_connection, repo):
        adapter.fetch_summary.side_effect = RuntimeError("no summary")
        google = make_connection(Platform.GOOGLE)
        _store(repo, google, "g1", 1)
        _store(repo, make_connection(Platform.FACEBOOK), "f1", 5)

        stats = await aggregator.recompute(google, adapter)

        assert (stats.total_reviews, stats.average_rating) == (1, 1.0)

    async def test_no_reviews_gives_zero(self, aggregator, adapter, make_connection):
        adapter.fetch_summary.side_effect = RuntimeError("no summary")

        stats = await aggregator.recompute(make_connection(Platform.FACEBOOK), adapter)

        assert (stats.total_reviews, stats.average_rating) == (0, 0.0)

    async def test_local_storage_failure_propagates(self, aggregator, adapter, make_connection, repo):
        adapter.fetch_summary.side_effect = RuntimeError("no summary")
        repo.fail_aggregate = True

        with pytest.raises(PersistenceError):
            await aggregator.recompute(make_connection(Platform.YELP), adapter)
