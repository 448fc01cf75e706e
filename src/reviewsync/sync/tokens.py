"""OAuth access-token lifecycle for Google connections.

A Google access token lives about an hour. Before every use the TokenManager
checks expiry with a safety buffer (default 5 minutes) and, when needed,
exchanges the stored refresh token for a new access token, persisting the
result. Failures persist a specific error status on the connection and raise
TokenError so the sync aborts before touching any review.

Yelp (app API key) and Facebook (page tokens) are not refreshed here.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from src.reviewsync.platforms.google_client import GoogleBusinessClient
from src.reviewsync.sync.errors import ProviderApiError, TokenError, TokenErrorReason
from src.reviewsync.sync.repository import SyncRepository
from src.reviewsync.sync.schemas import (
    ConnectionUpdate,
    Platform,
    PlatformConnection,
    SyncStatus,
    TokenState,
)

logger = structlog.get_logger(__name__)

DEFAULT_EXPIRY_BUFFER_SECONDS = 300


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Keeps Google access tokens valid.

    Args:
        repository: Storage used to persist refreshed tokens and error statuses.
        client: Google client exposing the refresh-token grant.
        expiry_buffer_seconds: Tokens expiring within this window are refreshed.
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        repository: SyncRepository,
        client: GoogleBusinessClient,
        expiry_buffer_seconds: int = DEFAULT_EXPIRY_BUFFER_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repository
        self._client = client
        self._buffer = timedelta(seconds=expiry_buffer_seconds)
        self._clock = clock

    def token_state(self, connection: PlatformConnection, now: datetime | None = None) -> TokenState:
        """VALID if the token outlives the buffer, EXPIRING otherwise (or if unknown)."""
        now = now or self._clock()
        expires_at = connection.token_expires_at
        if not connection.access_token or expires_at is None:
            return TokenState.EXPIRING
        if now >= expires_at - self._buffer:
            return TokenState.EXPIRING
        return TokenState.VALID

    async def get_valid_access_token(
        self, connection: PlatformConnection
    ) -> tuple[str, PlatformConnection]:
        """Return a usable access token and the (possibly updated) connection.

        Raises:
            TokenError: NO_REFRESH_TOKEN if expiring with nothing to refresh with,
                REFRESH_FAILED if the grant call fails. Status is persisted first.
        """
        if connection.platform is not Platform.GOOGLE:
            raise ValueError(f"TokenManager only manages Google tokens, got {connection.platform.value}")

        now = self._clock()
        if self.token_state(connection, now) is TokenState.VALID:
            return connection.access_token, connection  # type: ignore[return-value]

        logger.info(
            "token.expiring",
            connection_id=connection.id,
            expires_at=connection.token_expires_at.isoformat() if connection.token_expires_at else None,
        )

        if not connection.refresh_token:
            await self._repo.update_connection(
                connection.id,
                ConnectionUpdate(sync_status=SyncStatus.ERROR_NO_REFRESH_TOKEN),
            )
            logger.warning(
                "token.no_refresh_token",
                connection_id=connection.id,
                state=TokenState.FAILED.value,
            )
            raise TokenError(
                TokenErrorReason.NO_REFRESH_TOKEN,
                f"No refresh token available for connection {connection.id}",
            )

        try:
            payload = await self._client.refresh_access_token(connection.refresh_token)
            access_token = str(payload["access_token"])
            expires_in = int(payload["expires_in"])
        except (ProviderApiError, KeyError, TypeError, ValueError) as exc:
            await self._repo.update_connection(
                connection.id,
                ConnectionUpdate(sync_status=SyncStatus.ERROR_REFRESH_FAILED),
            )
            logger.error(
                "token.refresh_failed",
                connection_id=connection.id,
                state=TokenState.FAILED.value,
                error=str(exc),
            )
            raise TokenError(
                TokenErrorReason.REFRESH_FAILED,
                f"Failed to refresh token for connection {connection.id}",
            ) from exc

        expires_at = now + timedelta(seconds=expires_in)
        updated = await self._repo.update_connection(
            connection.id,
            ConnectionUpdate(
                access_token=access_token,
                token_expires_at=expires_at,
                sync_status=SyncStatus.ACTIVE,
            ),
        )
        logger.info(
            "token.refreshed",
            connection_id=connection.id,
            state=TokenState.REFRESHED.value,
            expires_at=expires_at.isoformat(),
        )
        return access_token, updated
