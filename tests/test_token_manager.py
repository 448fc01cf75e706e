"""Tests for the Google access-token lifecycle."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from src.reviewsync.sync.errors import (
    ProviderApiError,
    ProviderErrorCategory,
    TokenError,
    TokenErrorReason,
)
from src.reviewsync.sync.schemas import Platform, SyncStatus, TokenState
from src.reviewsync.sync.tokens import TokenManager

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def google_client():
    client = AsyncMock()
    client.refresh_access_token.return_value = {"access_token": "fresh-token", "expires_in": 3599}
    return client


@pytest.fixture
def manager(repo, google_client):
    return TokenManager(repo, google_client, expiry_buffer_seconds=300, clock=lambda: NOW)


class TestTokenState:
    def test_valid_outside_buffer(self, manager, make_connection):
        connection = make_connection(token_expires_at=NOW + timedelta(minutes=6))
        assert manager.token_state(connection) is TokenState.VALID

    def test_expiring_inside_buffer(self, manager, make_connection):
        connection = make_connection(token_expires_at=NOW + timedelta(minutes=4))
        assert manager.token_state(connection) is TokenState.EXPIRING

    def test_expired(self, manager, make_connection):
        connection = make_connection(token_expires_at=NOW - timedelta(hours=2))
        assert manager.token_state(connection) is TokenState.EXPIRING

    def test_unknown_expiry_is_expiring(self, manager, make_connection):
        connection = make_connection(token_expires_at=None)
        assert manager.token_state(connection) is TokenState.EXPIRING

    def test_missing_access_token_is_expiring(self, manager, make_connection):
        connection = make_connection(access_token=None)
        assert manager.token_state(connection) is TokenState.EXPIRING


class TestGetValidAccessToken:
    async def test_valid_token_returned_without_refresh(self, manager, google_client, make_connection, repo):
        connection = make_connection()

        token, returned = await manager.get_valid_access_token(connection)

        assert token == "access-token"
        assert returned is connection
        google_client.refresh_access_token.assert_not_called()
        assert repo.connection_updates == []

    async def test_expiring_token_is_refreshed_and_persisted(self, manager, google_client, make_connection, repo):
        connection = make_connection(token_expires_at=NOW + timedelta(minutes=1))

        token, returned = await manager.get_valid_access_token(connection)

        assert token == "fresh-token"
        google_client.refresh_access_token.assert_awaited_once_with("refresh-token")
        assert returned.access_token == "fresh-token"
        assert returned.token_expires_at == NOW + timedelta(seconds=3599)
        assert returned.sync_status == SyncStatus.ACTIVE
        assert repo.connections[connection.id].access_token == "fresh-token"

    async def test_refresh_restores_active_status(self, manager, make_connection, repo):
        connection = make_connection(
            token_expires_at=NOW - timedelta(minutes=1),
            sync_status=SyncStatus.ERROR_API_CALL,
        )

        await manager.get_valid_access_token(connection)

        assert repo.connections[connection.id].sync_status == SyncStatus.ACTIVE

    async def test_no_refresh_token(self, manager, google_client, make_connection, repo):
        connection = make_connection(token_expires_at=NOW - timedelta(minutes=1), refresh_token=None)

        with pytest.raises(TokenError) as exc_info:
            await manager.get_valid_access_token(connection)

        assert exc_info.value.reason == TokenErrorReason.NO_REFRESH_TOKEN
        assert repo.connections[connection.id].sync_status == SyncStatus.ERROR_NO_REFRESH_TOKEN
        google_client.refresh_access_token.assert_not_called()

    async def test_refresh_rejected_by_provider(self, manager, google_client, make_connection, repo):
        google_client.refresh_access_token.side_effect = ProviderApiError(
            "google", "invalid_grant", status_code=400, category=ProviderErrorCategory.CLIENT
        )
        connection = make_connection(token_expires_at=NOW - timedelta(minutes=1))

        with pytest.raises(TokenError) as exc_info:
            await manager.get_valid_access_token(connection)

        assert exc_info.value.reason == TokenErrorReason.REFRESH_FAILED
        assert isinstance(exc_info.value.__cause__, ProviderApiError)
        assert repo.connections[connection.id].sync_status == SyncStatus.ERROR_REFRESH_FAILED
        # the stale token is left in place
        assert repo.connections[connection.id].access_token == "access-token"

    async def test_malformed_refresh_payload(self, manager, google_client, make_connection, repo):
        google_client.refresh_access_token.return_value = {"token_type": "Bearer"}
        connection = make_connection(token_expires_at=None)

        with pytest.raises(TokenError) as exc_info:
            await manager.get_valid_access_token(connection)

        assert exc_info.value.reason == TokenErrorReason.REFRESH_FAILED
        assert repo.connections[connection.id].sync_status == SyncStatus.ERROR_REFRESH_FAILED

    async def test_rejects_non_google_connection(self, manager, make_connection):
        connection = make_connection(Platform.YELP)

        with pytest.raises(ValueError, match="yelp"):
            await manager.get_valid_access_token(connection)
