"""Facebook Pages adapter.

Facebook exposes "recommendations" (positive/negative) rather than stars;
older ratings still carry a 1-5 ``rating``. See normalization.facebook_rating
for the precedence. Reads use the page access token stored on the connection.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.platforms.facebook_client import FacebookGraphClient
from src.reviewsync.platforms.normalization import (
    facebook_external_id,
    facebook_rating,
    parse_timestamp,
)
from src.reviewsync.sync.errors import ProviderApiError, ProviderErrorCategory
from src.reviewsync.sync.schemas import (
    NormalizedReview,
    NormalizedSummary,
    Platform,
    PlatformConnection,
)

logger = structlog.get_logger(__name__)


def normalize_facebook_review(raw: dict[str, Any]) -> NormalizedReview:
    reviewer = raw.get("reviewer") or {}
    return NormalizedReview(
        external_id=facebook_external_id(raw),
        author_name=reviewer.get("name") or "Facebook user",
        rating=facebook_rating(raw.get("rating"), raw.get("recommendation_type")),
        content=raw.get("review_text") or "",
        published_at=parse_timestamp(raw["created_time"]),
    )


class FacebookAdapter(PlatformAdapter):
    """Adapter for Facebook Pages ratings.

    Args:
        client: FacebookGraphClient for raw API access.
        max_pages: Upper bound on ratings pages followed per sync.
    """

    platform = Platform.FACEBOOK

    def __init__(self, client: FacebookGraphClient, max_pages: int = 5) -> None:
        self._client = client
        self._max_pages = max(1, max_pages)

    @staticmethod
    def _page_token(connection: PlatformConnection) -> str:
        if not connection.access_token:
            raise ProviderApiError(
                Platform.FACEBOOK.value,
                f"connection {connection.id} has no page access token",
                category=ProviderErrorCategory.TOKEN_EXPIRED,
            )
        return connection.access_token

    async def fetch_reviews(self, connection: PlatformConnection) -> list[NormalizedReview]:
        page_id = await self.resolve_external_id(connection)
        token = self._page_token(connection)

        data = await self._client.get_ratings(page_id, token)
        reviews = [normalize_facebook_review(raw) for raw in data.get("data", [])]
        pages = 1
        next_url = (data.get("paging") or {}).get("next")
        while next_url and pages < self._max_pages:
            data = await self._client.get_next(next_url)
            reviews.extend(normalize_facebook_review(raw) for raw in data.get("data", []))
            next_url = (data.get("paging") or {}).get("next")
            pages += 1

        logger.info(
            "facebook.reviews_fetched",
            connection_id=connection.id,
            page_id=page_id,
            count=len(reviews),
            pages=pages,
        )
        return reviews

    async def fetch_summary(self, connection: PlatformConnection) -> NormalizedSummary:
        page_id = await self.resolve_external_id(connection)
        details = await self._client.get_page_details(page_id, self._page_token(connection))
        return NormalizedSummary(
            average_rating=float(details.get("overall_star_rating") or 0.0),
            total_reviews=int(details.get("rating_count") or 0),
        )

    async def reply_to_review(
        self, connection: PlatformConnection, external_id: str, text: str
    ) -> None:
        result = await self._client.post_comment(
            external_id, self._page_token(connection), text
        )
        logger.info(
            "facebook.reply_posted",
            connection_id=connection.id,
            review_external_id=external_id,
            comment_id=result.get("id"),
        )
