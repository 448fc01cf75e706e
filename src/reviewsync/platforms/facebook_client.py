"""Async HTTP client for the Facebook Graph API.

Page ratings are read with the page access token stored on the connection.
Graph errors carry a numeric ``error.code``; 190 means the access token is
expired or invalidated and the page must be reconnected.
"""

from __future__ import annotations

from typing import Any

import httpx

from src.reviewsync.platforms.http import ProviderClient
from src.reviewsync.sync.errors import ProviderApiError, ProviderErrorCategory
from src.reviewsync.sync.schemas import Platform

GRAPH_TOKEN_EXPIRED_CODE = 190
GRAPH_RATE_LIMIT_CODES = frozenset({4, 17, 32, 613})

RATINGS_FIELDS = "created_time,reviewer,recommendation_type,review_text,rating,open_graph_story"
PAGE_FIELDS = "name,overall_star_rating,rating_count,link"


class FacebookGraphClient(ProviderClient):
    """Raw access to page ratings, page details and comments.

    Args:
        graph_version: Graph API version segment, e.g. ``v19.0``.
    """

    platform = Platform.FACEBOOK

    def __init__(self, graph_version: str = "v19.0", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._base_url = f"https://graph.facebook.com/{graph_version}"

    def _classify(self, response: httpx.Response) -> ProviderApiError:
        error = super()._classify(response)
        try:
            graph_error = response.json().get("error", {})
        except ValueError:
            return error

        code = graph_error.get("code")
        if code == GRAPH_TOKEN_EXPIRED_CODE:
            error.category = ProviderErrorCategory.TOKEN_EXPIRED
        elif code in GRAPH_RATE_LIMIT_CODES:
            error.category = ProviderErrorCategory.RATE_LIMITED
        if graph_error.get("message"):
            error.args = (f"{error.args[0]} ({graph_error['message']})",)
        return error

    async def get_ratings(
        self, page_id: str, page_access_token: str, *, limit: int = 50
    ) -> dict[str, Any]:
        """Fetch the first page of ratings/recommendations for a page."""
        return await self._request(
            "GET",
            f"{self._base_url}/{page_id}/ratings",
            params={
                "access_token": page_access_token,
                "fields": RATINGS_FIELDS,
                "limit": str(limit),
            },
            headers={"Accept": "application/json"},
        )

    async def get_next(self, next_url: str) -> dict[str, Any]:
        """Follow a ``paging.next`` URL (already carries token and cursor)."""
        return await self._request("GET", next_url, headers={"Accept": "application/json"})

    async def get_page_details(self, page_id: str, page_access_token: str) -> dict[str, Any]:
        """Fetch page name, link and aggregate rating fields."""
        return await self._request(
            "GET",
            f"{self._base_url}/{page_id}",
            params={"access_token": page_access_token, "fields": PAGE_FIELDS},
            headers={"Accept": "application/json"},
        )

    async def post_comment(
        self, object_id: str, page_access_token: str, message: str
    ) -> dict[str, Any]:
        """Comment on a rating story as the page. Returns ``{"id": ...}``."""
        return await self._request(
            "POST",
            f"{self._base_url}/{object_id}/comments",
            params={"access_token": page_access_token},
            json={"message": message},
            headers={"Accept": "application/json"},
        )
