"""Sync status state machine for platform connections.

States (SyncStatus):
- active: last run completed
- error_token_expired: provider rejected the stored token
- error_no_refresh_token: Google token expired and no refresh token is stored
- error_refresh_failed: Google refresh-token grant failed
- error_api_call: any other failure during fetch or reconciliation

Every invocation starts from whatever state the last one left; a complete run
moves the connection to ``active``. Token states need a user reconnect, so
schedulers skip them instead of retrying.
"""

from __future__ import annotations

from src.reviewsync.sync.errors import (
    ProviderApiError,
    ProviderErrorCategory,
    TokenError,
    TokenErrorReason,
)
from src.reviewsync.sync.schemas import SyncStatus

_TOKEN_REASON_STATUS: dict[TokenErrorReason, SyncStatus] = {
    TokenErrorReason.NO_REFRESH_TOKEN: SyncStatus.ERROR_NO_REFRESH_TOKEN,
    TokenErrorReason.REFRESH_FAILED: SyncStatus.ERROR_REFRESH_FAILED,
}

REAUTHORIZATION_STATUSES = frozenset(
    {
        SyncStatus.ERROR_TOKEN_EXPIRED,
        SyncStatus.ERROR_NO_REFRESH_TOKEN,
        SyncStatus.ERROR_REFRESH_FAILED,
    }
)


def status_for_failure(exc: BaseException) -> SyncStatus:
    """Classify a failed run into the nearest error state."""
    if isinstance(exc, TokenError):
        return _TOKEN_REASON_STATUS[exc.reason]
    if isinstance(exc, ProviderApiError) and exc.category == ProviderErrorCategory.TOKEN_EXPIRED:
        return SyncStatus.ERROR_TOKEN_EXPIRED
    return SyncStatus.ERROR_API_CALL


def status_for_success() -> SyncStatus:
    return SyncStatus.ACTIVE


def requires_reauthorization(status: SyncStatus) -> bool:
    """True when only a user re-authorization can recover the connection."""
    return status in REAUTHORIZATION_STATUSES


def is_syncable(status: SyncStatus) -> bool:
    """True when a scheduled sync may be attempted for this status."""
    return not requires_reauthorization(status)
