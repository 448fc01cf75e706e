"""Async HTTP client for the Yelp Fusion API (v3).

Authenticates with the application-level API key, not a per-connection token.
"""

from __future__ import annotations

from typing import Any

from src.reviewsync.platforms.http import ProviderClient
from src.reviewsync.sync.errors import ProviderApiError, ProviderErrorCategory
from src.reviewsync.sync.schemas import Platform

YELP_BASE_URL = "https://api.yelp.com/v3"


class YelpClient(ProviderClient):
    """Raw access to Yelp business details and reviews.

    Args:
        api_key: Yelp Fusion API key.
    """

    platform = Platform.YELP

    def __init__(self, api_key: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderApiError(
                self.platform.value,
                "YELP_API_KEY is not configured",
                category=ProviderErrorCategory.AUTH,
            )
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }

    async def get_reviews(self, business_id: str) -> dict[str, Any]:
        """Fetch the newest reviews of a business (the API caps this at 3)."""
        return await self._request(
            "GET",
            f"{YELP_BASE_URL}/businesses/{business_id}/reviews",
            params={"sort_by": "newest"},
            headers=self._headers(),
        )

    async def get_business(self, business_id: str) -> dict[str, Any]:
        """Fetch business details including ``rating`` and ``review_count``."""
        return await self._request(
            "GET",
            f"{YELP_BASE_URL}/businesses/{business_id}",
            headers=self._headers(),
        )
