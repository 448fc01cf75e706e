"""Async HTTP client for the Google Business Profile APIs.

Three API families are involved:
- Account Management (v1): list accounts
- Business Information (v1): list locations of an account
- My Business (v4): list and reply to reviews of a location

Plus the OAuth token endpoint for the refresh-token grant.
"""

from __future__ import annotations

from typing import Any

import httpx

from src.reviewsync.platforms.http import ProviderClient
from src.reviewsync.sync.errors import ProviderApiError, ProviderErrorCategory
from src.reviewsync.sync.schemas import Platform

ACCOUNT_BASE_URL = "https://mybusinessaccountmanagement.googleapis.com/v1"
INFO_BASE_URL = "https://mybusinessbusinessinformation.googleapis.com/v1"
REVIEWS_BASE_URL = "https://mybusiness.googleapis.com/v4"
TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleBusinessClient(ProviderClient):
    """Raw access to Google Business Profile reviews.

    Args:
        client_id: OAuth client ID used for refresh-token grants.
        client_secret: OAuth client secret.
    """

    platform = Platform.GOOGLE

    def __init__(self, client_id: str, client_secret: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client_id = client_id
        self._client_secret = client_secret

    @staticmethod
    def _auth(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def _classify(self, response: httpx.Response) -> ProviderApiError:
        error = super()._classify(response)
        # Google answers 401 when the bearer token has expired or been revoked.
        if response.status_code == 401:
            error.category = ProviderErrorCategory.TOKEN_EXPIRED
        return error

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        """Exchange a refresh token for a new access token.

        Returns:
            Token payload with at least ``access_token`` and ``expires_in`` (seconds).
        """
        return await self._request(
            "POST",
            TOKEN_URL,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )

    async def list_accounts(self, access_token: str) -> list[dict[str, Any]]:
        """List accounts visible to the token. Each ``name`` is ``accounts/{id}``."""
        data = await self._request(
            "GET", f"{ACCOUNT_BASE_URL}/accounts", headers=self._auth(access_token)
        )
        return data.get("accounts", [])

    async def list_locations(
        self, access_token: str, account_name: str
    ) -> list[dict[str, Any]]:
        """List locations of ``accounts/{id}``. Each ``name`` is ``locations/{id}``."""
        data = await self._request(
            "GET",
            f"{INFO_BASE_URL}/{account_name}/locations",
            params={"readMask": "name,title,storeCode"},
            headers=self._auth(access_token),
        )
        return data.get("locations", [])

    async def list_reviews(
        self,
        access_token: str,
        account_id: str,
        location_id: str,
        *,
        page_size: int = 50,
        page_token: str | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of reviews for a location.

        The page also carries ``averageRating``, ``totalReviewCount`` and,
        when more pages exist, ``nextPageToken``.
        """
        params: dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token
        return await self._request(
            "GET",
            f"{REVIEWS_BASE_URL}/accounts/{account_id}/locations/{location_id}/reviews",
            params=params,
            headers=self._auth(access_token),
        )

    async def reply_to_review(
        self,
        access_token: str,
        account_id: str,
        location_id: str,
        review_id: str,
        text: str,
    ) -> None:
        """Create or replace the owner reply on a review."""
        await self._request(
            "PUT",
            f"{REVIEWS_BASE_URL}/accounts/{account_id}/locations/{location_id}"
            f"/reviews/{review_id}/reply",
            json={"comment": text},
            headers=self._auth(access_token),
        )
