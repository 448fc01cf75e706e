"""Platform adapter abstract base class -- the interface every review source implements.

Each adapter wraps one provider client and translates its native payloads
into NormalizedReview / NormalizedSummary. Adapters are pure I/O: they never
write to storage and never retry (retries live in the client transport).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from src.reviewsync.sync.errors import (
    ProviderApiError,
    ProviderErrorCategory,
    ReplyNotSupportedError,
)
from src.reviewsync.sync.schemas import (
    NormalizedReview,
    NormalizedSummary,
    Platform,
    PlatformConnection,
    ReviewBatch,
)


class PlatformAdapter(ABC):
    """Abstract interface for one external review platform.

    Attributes:
        platform: The Platform member this adapter serves.
        supports_replies: Whether the provider accepts owner replies via API.
        max_reviews_per_fetch: Hard provider cap on reviews per fetch, None if unbounded.

    Methods:
        fetch_reviews: Fetch and normalize the reviews visible for a connection.
        fetch_review_batch: fetch_reviews plus the provider-reported total, if any.
        fetch_summary: Fetch the provider's own rating/count aggregate.
        resolve_external_id: Return (or discover) the provider-side business id.
        reply_to_review: Post an owner reply to one review.
    """

    platform: ClassVar[Platform]
    supports_replies: ClassVar[bool] = True
    max_reviews_per_fetch: ClassVar[int | None] = None

    @abstractmethod
    async def fetch_reviews(self, connection: PlatformConnection) -> list[NormalizedReview]:
        """Fetch reviews and normalize them into the universal shape."""
        ...

    @abstractmethod
    async def fetch_summary(self, connection: PlatformConnection) -> NormalizedSummary:
        """Fetch the live aggregate rating and review count."""
        ...

    async def fetch_review_batch(self, connection: PlatformConnection) -> ReviewBatch:
        """Fetch reviews; adapters whose provider reports a total override this."""
        return ReviewBatch(reviews=await self.fetch_reviews(connection))

    async def resolve_external_id(self, connection: PlatformConnection) -> str:
        """Return the provider-side business id stored on the connection."""
        if not connection.external_id:
            raise ProviderApiError(
                self.platform.value,
                f"connection {connection.id} has no external id",
                category=ProviderErrorCategory.NOT_FOUND,
            )
        return connection.external_id

    async def reply_to_review(
        self, connection: PlatformConnection, external_id: str, text: str
    ) -> None:
        """Post an owner reply. Platforms without a reply API raise."""
        raise ReplyNotSupportedError(
            f"{self.platform.value} does not support replying to reviews via API"
        )
