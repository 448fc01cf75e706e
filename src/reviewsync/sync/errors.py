"""Error taxonomy for the review sync pipeline.

Fatal to an invocation: TokenError, ProviderApiError, ConnectionNotFoundError.
Contained inside an invocation: PersistenceError (one review skipped),
AnalysisError (review left for the next sync), SummaryFetchError (local
aggregate used instead).
"""

from __future__ import annotations

from enum import Enum


class SyncError(Exception):
    """Base class for all review sync errors."""


class TokenErrorReason(str, Enum):
    NO_REFRESH_TOKEN = "no_refresh_token"
    REFRESH_FAILED = "refresh_failed"


class TokenError(SyncError):
    """An OAuth access token could not be made valid.

    The connection status has already been persisted when this is raised;
    recovering requires the user to re-authorize the platform.
    """

    def __init__(self, reason: TokenErrorReason, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or f"Token error: {reason.value}")


class ProviderErrorCategory(str, Enum):
    AUTH = "auth"
    TOKEN_EXPIRED = "token_expired"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    CLIENT = "client"
    SERVER = "server"
    NETWORK = "network"


TRANSIENT_CATEGORIES = frozenset(
    {
        ProviderErrorCategory.RATE_LIMITED,
        ProviderErrorCategory.SERVER,
        ProviderErrorCategory.NETWORK,
    }
)


class ProviderApiError(SyncError):
    """Non-success response (or transport failure) from a provider API."""

    def __init__(
        self,
        platform: str,
        message: str,
        *,
        status_code: int | None = None,
        category: ProviderErrorCategory = ProviderErrorCategory.CLIENT,
    ) -> None:
        self.platform = platform
        self.status_code = status_code
        self.category = category
        super().__init__(f"{platform} API error: {message}")

    @property
    def is_transient(self) -> bool:
        return self.category in TRANSIENT_CATEGORIES


class PersistenceError(SyncError):
    """A storage write or read failed."""


class AnalysisError(SyncError):
    """The analysis collaborator failed for one review."""


class SummaryFetchError(SyncError):
    """The live provider summary could not be fetched."""


class ConnectionNotFoundError(SyncError):
    """No platform connection exists for the given id."""


class ReviewNotFoundError(SyncError):
    """No canonical review exists for the given id."""


class ReplyNotSupportedError(SyncError):
    """The platform offers no API for posting review replies."""


class SyncInProgressError(SyncError):
    """Another sync holds the lease for this connection."""
