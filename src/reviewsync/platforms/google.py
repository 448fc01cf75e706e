"""Google Business Profile adapter.

Reviews live under account -> location. The connection's ``external_id`` is
the location id; when it is missing the first location of the account is
used and reported back through resolve_external_id() so the orchestrator can
persist it. Star ratings arrive as enum names (``ONE`` .. ``FIVE``).
"""

from __future__ import annotations

from typing import Any

import structlog

from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.platforms.google_client import GoogleBusinessClient
from src.reviewsync.platforms.normalization import google_star_rating, parse_timestamp
from src.reviewsync.sync.errors import ProviderApiError, ProviderErrorCategory
from src.reviewsync.sync.schemas import (
    NormalizedReview,
    NormalizedSummary,
    Platform,
    PlatformConnection,
    ProviderReply,
)

logger = structlog.get_logger(__name__)

REVIEWS_PAGE_SIZE = 50


def normalize_google_review(raw: dict[str, Any]) -> NormalizedReview:
    """Convert one v4 review resource into a NormalizedReview."""
    reviewer = raw.get("reviewer") or {}
    reply = raw.get("reviewReply")
    return NormalizedReview(
        external_id=raw["reviewId"],
        author_name=reviewer.get("displayName") or "Anonymous",
        author_avatar_url=reviewer.get("profilePhotoUrl"),
        rating=google_star_rating(raw.get("starRating")),
        content=raw.get("comment") or "",
        published_at=parse_timestamp(raw["createTime"]),
        reply=(
            ProviderReply(
                text=reply.get("comment", ""),
                replied_at=parse_timestamp(reply["updateTime"]) if reply.get("updateTime") else None,
            )
            if reply
            else None
        ),
    )


class GoogleAdapter(PlatformAdapter):
    """Adapter for Google Business Profile locations.

    Args:
        client: GoogleBusinessClient for raw API access.
        max_pages: Upper bound on review pages fetched per sync.
    """

    platform = Platform.GOOGLE

    def __init__(self, client: GoogleBusinessClient, max_pages: int = 10) -> None:
        self._client = client
        self._max_pages = max(1, max_pages)
        # connection id -> (access token, account); a refreshed token forces a new lookup
        self._accounts: dict[str, tuple[str, dict[str, Any]]] = {}

    @staticmethod
    def _token(connection: PlatformConnection) -> str:
        if not connection.access_token:
            raise ProviderApiError(
                Platform.GOOGLE.value,
                f"connection {connection.id} has no access token",
                category=ProviderErrorCategory.TOKEN_EXPIRED,
            )
        return connection.access_token

    async def _account(self, connection_id: str, access_token: str) -> dict[str, Any]:
        """Pick the account to use: an ORGANIZATION account if any, else the first.

        The choice is reused for the same connection while its access token is
        unchanged, so one sync lists accounts once.
        """
        cached = self._accounts.get(connection_id)
        if cached is not None and cached[0] == access_token:
            return cached[1]

        account = await self._pick_account(access_token)
        self._accounts[connection_id] = (access_token, account)
        return account

    async def _pick_account(self, access_token: str) -> dict[str, Any]:
        accounts = await self._client.list_accounts(access_token)
        if not accounts:
            raise ProviderApiError(
                self.platform.value,
                "No Google accounts found for this token",
                category=ProviderErrorCategory.NOT_FOUND,
            )
        for account in accounts:
            if account.get("type") == "ORGANIZATION":
                return account
        return accounts[0]

    @staticmethod
    def _account_id(account: dict[str, Any]) -> str:
        # "accounts/{accountId}"
        return account["name"].split("/")[1]

    async def resolve_external_id(self, connection: PlatformConnection) -> str:
        """Return the stored location id, or discover the account's first location."""
        if connection.external_id:
            return connection.external_id

        token = self._token(connection)
        account = await self._account(connection.id, token)
        locations = await self._client.list_locations(token, account["name"])
        if not locations:
            raise ProviderApiError(
                self.platform.value,
                f"No locations found for {account['name']}",
                category=ProviderErrorCategory.NOT_FOUND,
            )
        location_id = locations[0]["name"].split("/")[-1]
        logger.info(
            "google.location_discovered",
            connection_id=connection.id,
            location_id=location_id,
        )
        return location_id

    async def fetch_reviews(self, connection: PlatformConnection) -> list[NormalizedReview]:
        """Fetch all review pages (bounded by max_pages) for the location."""
        token = self._token(connection)
        location_id = await self.resolve_external_id(connection)
        account_id = self._account_id(await self._account(connection.id, token))

        reviews: list[NormalizedReview] = []
        page_token: str | None = None
        for _ in range(self._max_pages):
            page = await self._client.list_reviews(
                token,
                account_id,
                location_id,
                page_size=REVIEWS_PAGE_SIZE,
                page_token=page_token,
            )
            reviews.extend(normalize_google_review(raw) for raw in page.get("reviews", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.warning(
                "google.review_pages_capped",
                connection_id=connection.id,
                max_pages=self._max_pages,
                fetched=len(reviews),
            )

        logger.info(
            "google.reviews_fetched",
            connection_id=connection.id,
            account_id=account_id,
            location_id=location_id,
            count=len(reviews),
        )
        return reviews

    async def fetch_summary(self, connection: PlatformConnection) -> NormalizedSummary:
        """Read averageRating / totalReviewCount from the reviews listing."""
        token = self._token(connection)
        location_id = await self.resolve_external_id(connection)
        account_id = self._account_id(await self._account(connection.id, token))
        page = await self._client.list_reviews(token, account_id, location_id, page_size=1)
        return NormalizedSummary(
            average_rating=float(page.get("averageRating") or 0.0),
            total_reviews=int(page.get("totalReviewCount") or 0),
        )

    async def reply_to_review(
        self, connection: PlatformConnection, external_id: str, text: str
    ) -> None:
        token = self._token(connection)
        location_id = await self.resolve_external_id(connection)
        account_id = self._account_id(await self._account(connection.id, token))
        await self._client.reply_to_review(token, account_id, location_id, external_id, text)
        logger.info(
            "google.reply_posted",
            connection_id=connection.id,
            review_external_id=external_id,
        )
