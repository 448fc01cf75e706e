"""Pydantic schemas for review sync -- connections, canonical reviews, adapter payloads.

Defines all structured types that flow through the sync pipeline:
- Enums: Platform, SyncStatus, ResponseStatus, ProcessingStatus, TokenState, Sentiment, StatsSource
- Storage shapes: PlatformConnection, ConnectionUpdate, CanonicalReview, ReviewUpsert, ReviewUpdate
- Adapter output: NormalizedReview, ProviderReply, ReviewBatch, NormalizedSummary
- Collaborator payloads: AnalysisResult
- Results: ReviewFailure, ReconciliationReport, PlatformStats, SyncResult
- Batch runs: RunOutcome, ConnectionRunResult, SyncRunReport
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class Platform(str, Enum):
    """External review sources a business can connect."""

    GOOGLE = "google"
    YELP = "yelp"
    FACEBOOK = "facebook"


class SyncStatus(str, Enum):
    """Health of a connection's most recent sync attempt."""

    ACTIVE = "active"
    ERROR_TOKEN_EXPIRED = "error_token_expired"
    ERROR_NO_REFRESH_TOKEN = "error_no_refresh_token"
    ERROR_REFRESH_FAILED = "error_refresh_failed"
    ERROR_API_CALL = "error_api_call"


class ResponseStatus(str, Enum):
    """Whether the business has answered a review."""

    PENDING = "pending"
    RESPONDED = "responded"
    IGNORED = "ignored"


class ProcessingStatus(str, Enum):
    """Enrichment state of a canonical review."""

    UNPROCESSED = "unprocessed"
    PROCESSED = "processed"
    FAILED = "failed"


class TokenState(str, Enum):
    """Lifecycle states of an OAuth access token."""

    VALID = "valid"
    EXPIRING = "expiring"
    REFRESHED = "refreshed"
    FAILED = "failed"


class Sentiment(str, Enum):
    """Overall tone of a review as judged by the analysis collaborator."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    MIXED = "mixed"


class StatsSource(str, Enum):
    """Where recomputed platform stats came from."""

    LIVE = "live"
    LOCAL = "local"


# ── Connections ─────────────────────────────────────────────────────────────


class PlatformConnection(BaseModel):
    """A business's link to one external review platform."""

    id: str
    business_id: str
    platform: Platform
    external_id: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    sync_status: SyncStatus = SyncStatus.ACTIVE
    last_synced_at: datetime | None = None
    total_reviews: int = 0
    average_rating: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ConnectionUpdate(BaseModel):
    """Partial update for a connection. Only explicitly set fields are written."""

    external_id: str | None = None
    access_token: str | None = None
    token_expires_at: datetime | None = None
    sync_status: SyncStatus | None = None
    last_synced_at: datetime | None = None
    total_reviews: int | None = Field(default=None, ge=0)
    average_rating: float | None = Field(default=None, ge=0, le=5)


# ── Adapter Output ──────────────────────────────────────────────────────────


class ProviderReply(BaseModel):
    """Owner reply as reported by the provider."""

    text: str
    replied_at: datetime | None = None


class NormalizedReview(BaseModel):
    """Provider review translated into the universal shape.

    ``rating`` is 1-5; 0 marks a provider value the adapter could not map.
    """

    external_id: str
    author_name: str
    author_avatar_url: str | None = None
    rating: int = Field(ge=0, le=5)
    content: str = ""
    published_at: datetime
    external_url: str | None = None
    reply: ProviderReply | None = None


class ReviewBatch(BaseModel):
    """Reviews returned by one fetch, with the provider's own count when it reports one."""

    reviews: list[NormalizedReview] = Field(default_factory=list)
    provider_total: int | None = Field(default=None, ge=0)

    @property
    def truncated(self) -> bool:
        return self.provider_total is not None and self.provider_total > len(self.reviews)


class NormalizedSummary(BaseModel):
    """Provider-reported aggregate for one business."""

    average_rating: float = Field(ge=0, le=5)
    total_reviews: int = Field(ge=0)


# ── Canonical Reviews ───────────────────────────────────────────────────────


class CanonicalReview(BaseModel):
    """Locally-owned representation of one provider review."""

    id: str
    business_id: str
    platform: Platform
    connection_id: str
    external_id: str
    external_url: str | None = None
    author_name: str
    author_avatar_url: str | None = None
    rating: int
    content: str = ""
    published_at: datetime
    response_status: ResponseStatus = ResponseStatus.PENDING
    response_text: str | None = None
    responded_at: datetime | None = None
    response_source: Platform | None = None
    sentiment: str | None = None
    urgency_score: int | None = None
    topics: list[str] = Field(default_factory=list)
    suggested_reply: str | None = None
    processing_status: ProcessingStatus = ProcessingStatus.UNPROCESSED
    analyzed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def needs_analysis(self) -> bool:
        """True while enrichment has not succeeded and the content is non-empty.

        Rows enriched before processing_status existed carry a sentiment and
        count as processed.
        """
        return (
            self.processing_status != ProcessingStatus.PROCESSED
            and self.sentiment is None
            and bool(self.content)
        )


class ReviewUpsert(BaseModel):
    """Provider-sourced fields written on every reconciliation."""

    business_id: str
    platform: Platform
    connection_id: str
    external_id: str
    external_url: str | None = None
    author_name: str
    author_avatar_url: str | None = None
    rating: int = Field(ge=0, le=5)
    content: str = ""
    published_at: datetime
    reply: ProviderReply | None = None


class ReviewUpdate(BaseModel):
    """Partial update for a canonical review (enrichment and reply fields)."""

    sentiment: str | None = None
    urgency_score: int | None = None
    topics: list[str] | None = None
    suggested_reply: str | None = None
    processing_status: ProcessingStatus | None = None
    analyzed_at: datetime | None = None
    response_status: ResponseStatus | None = None
    response_text: str | None = None
    responded_at: datetime | None = None
    response_source: Platform | None = None


# ── Collaborator Payloads ───────────────────────────────────────────────────


class AnalysisResult(BaseModel):
    """Output of the analysis collaborator for one review."""

    sentiment: Sentiment
    urgency_score: int = Field(default=0, ge=0, le=10)
    topics: list[str] = Field(default_factory=list)
    suggested_reply: str | None = None


# ── Results ─────────────────────────────────────────────────────────────────


class ReviewFailure(BaseModel):
    """A review that could not be reconciled during a sync."""

    external_id: str
    reason: str


class ReconciliationReport(BaseModel):
    """Per-item outcome of reconciling one batch of normalized reviews."""

    ok: list[str] = Field(default_factory=list)
    failed: list[ReviewFailure] = Field(default_factory=list)
    analyzed: int = 0
    alerts: int = 0


class PlatformStats(BaseModel):
    """Recomputed review count and average rating for one connection."""

    total_reviews: int = Field(ge=0)
    average_rating: float = Field(ge=0, le=5)
    source: StatsSource


class SyncResult(BaseModel):
    """Summary of one orchestrator invocation."""

    success: bool
    total: int = 0
    analyzed: int = 0
    alerts: int = 0
    ok: list[str] = Field(default_factory=list)
    failed: list[ReviewFailure] = Field(default_factory=list)
    stats_source: StatsSource | None = None
    truncated: bool = False


class RunOutcome(str, Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


class ConnectionRunResult(BaseModel):
    """Outcome for one connection within a batch run."""

    connection_id: str
    platform: Platform
    outcome: RunOutcome
    result: SyncResult | None = None
    error: str | None = None


class SyncRunReport(BaseModel):
    """Per-connection results of one scheduled or cron-triggered run."""

    results: list[ConnectionRunResult] = Field(default_factory=list)

    @property
    def synced(self) -> int:
        return sum(1 for r in self.results if r.outcome == RunOutcome.SYNCED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome == RunOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == RunOutcome.SKIPPED)
