"""Yelp Fusion adapter.

NOTE: the Yelp API returns at most the 3 newest reviews per business,
whatever the business's total. The cap is exposed as
``max_reviews_per_fetch``; the response's ``total`` is passed through the
ReviewBatch so callers can report truncated syncs. Yelp also offers no API
for owner replies.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.platforms.normalization import parse_yelp_timestamp
from src.reviewsync.platforms.yelp_client import YelpClient
from src.reviewsync.sync.schemas import (
    NormalizedReview,
    NormalizedSummary,
    Platform,
    PlatformConnection,
    ReviewBatch,
)

logger = structlog.get_logger(__name__)

YELP_MAX_REVIEWS = 3


def normalize_yelp_review(raw: dict[str, Any]) -> NormalizedReview:
    user = raw.get("user") or {}
    return NormalizedReview(
        external_id=raw["id"],
        author_name=user.get("name") or "Yelp user",
        author_avatar_url=user.get("image_url"),
        rating=int(raw["rating"]),
        content=raw.get("text") or "",
        published_at=parse_yelp_timestamp(raw["time_created"]),
        external_url=raw.get("url"),
    )


class YelpAdapter(PlatformAdapter):
    """Adapter for Yelp businesses.

    Args:
        client: YelpClient for raw API access.
    """

    platform = Platform.YELP
    supports_replies = False
    max_reviews_per_fetch = YELP_MAX_REVIEWS

    def __init__(self, client: YelpClient) -> None:
        self._client = client

    async def fetch_reviews(self, connection: PlatformConnection) -> list[NormalizedReview]:
        return (await self.fetch_review_batch(connection)).reviews

    async def fetch_review_batch(self, connection: PlatformConnection) -> ReviewBatch:
        business_id = await self.resolve_external_id(connection)
        data = await self._client.get_reviews(business_id)
        reviews = [normalize_yelp_review(raw) for raw in data.get("reviews", [])]

        batch = ReviewBatch(reviews=reviews, provider_total=data.get("total"))
        if batch.truncated:
            logger.warning(
                "yelp.reviews_truncated",
                connection_id=connection.id,
                business_id=business_id,
                returned=len(reviews),
                provider_total=batch.provider_total,
            )
        return batch

    async def fetch_summary(self, connection: PlatformConnection) -> NormalizedSummary:
        business_id = await self.resolve_external_id(connection)
        business = await self._client.get_business(business_id)
        return NormalizedSummary(
            average_rating=float(business.get("rating") or 0.0),
            total_reviews=int(business.get("review_count") or 0),
        )
