"""Shared async HTTP plumbing for provider clients.

Every provider client subclasses ProviderClient, which:
- opens a short-lived httpx.AsyncClient per request with an explicit timeout
- classifies non-success responses and transport failures into ProviderApiError
- retries only transient failures (5xx, 429, network) with bounded
  exponential backoff via tenacity

Adapters sit on top of these clients and never retry on their own.
"""

from __future__ import annotations

from typing import Any, ClassVar

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from src.reviewsync.sync.errors import ProviderApiError, ProviderErrorCategory
from src.reviewsync.sync.schemas import Platform

logger = structlog.get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderApiError) and exc.is_transient


def _redact(url: str) -> str:
    """Drop the query string; paging URLs carry access tokens in it."""
    return str(httpx.URL(url).copy_with(query=None))


def category_for_status(status_code: int) -> ProviderErrorCategory:
    """Map an HTTP status code to a provider error category."""
    if status_code in (401, 403):
        return ProviderErrorCategory.AUTH
    if status_code == 404:
        return ProviderErrorCategory.NOT_FOUND
    if status_code == 429:
        return ProviderErrorCategory.RATE_LIMITED
    if status_code >= 500:
        return ProviderErrorCategory.SERVER
    return ProviderErrorCategory.CLIENT


class ProviderClient:
    """Base class for raw provider API access.

    Args:
        timeout: Per-request timeout in seconds.
        max_retries: Total attempts for transient failures (1 disables retries).
        retry_max_wait: Upper bound in seconds for a single backoff sleep.
    """

    platform: ClassVar[Platform]

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_max_wait: float = 10.0,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._retry_max_wait = retry_max_wait

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send a request, retrying transient failures, and return the JSON body."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=1, max=self._retry_max_wait),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        payload: dict[str, Any] = {}
        async for attempt in retrying:
            with attempt:
                payload = await self._send(
                    method, url, params=params, json=json, data=data, headers=headers
                )
        return payload

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        json: dict[str, Any] | None,
        data: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    data=data,
                    headers=headers,
                )
            except httpx.TimeoutException as exc:
                raise ProviderApiError(
                    self.platform.value,
                    f"timeout calling {method} {_redact(url)}",
                    category=ProviderErrorCategory.NETWORK,
                ) from exc
            except httpx.TransportError as exc:
                raise ProviderApiError(
                    self.platform.value,
                    f"transport failure calling {method} {_redact(url)}: {type(exc).__name__}",
                    category=ProviderErrorCategory.NETWORK,
                ) from exc

        if response.is_error:
            error = self._classify(response)
            logger.warning(
                "provider.request_failed",
                platform=self.platform.value,
                method=method,
                status_code=response.status_code,
                category=error.category.value,
                body=response.text[:500],
            )
            raise error

        if not response.content:
            return {}
        return response.json()

    def _classify(self, response: httpx.Response) -> ProviderApiError:
        """Build a ProviderApiError for a non-success response."""
        return ProviderApiError(
            self.platform.value,
            f"{response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            category=category_for_status(response.status_code),
        )
