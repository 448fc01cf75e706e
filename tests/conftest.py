"""Shared fixtures for review sync tests.

Provides:
- InMemorySyncRepository: SyncRepository test double with the same upsert
  and reply-precedence semantics, plus hooks to inject storage failures
- make_connection: factory for PlatformConnection rows stored in the double
- StubAnalyzer / RecordingAlerter: collaborator doubles
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.reviewsync.services.alerts import ReviewAlerter
from src.reviewsync.services.analysis import ReviewAnalyzer
from src.reviewsync.sync.errors import (
    ConnectionNotFoundError,
    PersistenceError,
    ReviewNotFoundError,
)
from src.reviewsync.sync.schemas import (
    AnalysisResult,
    CanonicalReview,
    ConnectionUpdate,
    NormalizedReview,
    Platform,
    PlatformConnection,
    ResponseStatus,
    ReviewUpdate,
    ReviewUpsert,
    SyncStatus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemorySyncRepository:
    """In-memory SyncRepository for testing without a database."""

    def __init__(self) -> None:
        self.connections: dict[str, PlatformConnection] = {}
        self.reviews: dict[str, CanonicalReview] = {}
        self.connection_updates: list[tuple[str, dict[str, Any]]] = []
        self.fail_upsert_for: set[str] = set()
        self.fail_aggregate = False

    def add_connection(self, connection: PlatformConnection) -> PlatformConnection:
        self.connections[connection.id] = connection
        return connection

    def find_review(self, platform: Platform, external_id: str) -> CanonicalReview | None:
        for review in self.reviews.values():
            if review.platform == platform and review.external_id == external_id:
                return review
        return None

    async def get_connection(self, connection_id: str) -> PlatformConnection | None:
        return self.connections.get(connection_id)

    async def list_connections(
        self,
        platform: Platform | None = None,
        statuses: list[SyncStatus] | None = None,
    ) -> list[PlatformConnection]:
        result = list(self.connections.values())
        if platform is not None:
            result = [c for c in result if c.platform == platform]
        if statuses:
            result = [c for c in result if c.sync_status in statuses]
        return result

    async def update_connection(
        self, connection_id: str, data: ConnectionUpdate
    ) -> PlatformConnection:
        connection = self.connections.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        fields = data.model_dump(exclude_unset=True)
        self.connection_updates.append((connection_id, fields))
        updated = connection.model_copy(update=fields)
        self.connections[connection_id] = updated
        return updated

    async def upsert_review(self, data: ReviewUpsert) -> CanonicalReview:
        if data.external_id in self.fail_upsert_for:
            raise PersistenceError(f"Failed to upsert review {data.platform.value}:{data.external_id}")

        existing = None
        for review in self.reviews.values():
            if (
                review.business_id == data.business_id
                and review.platform == data.platform
                and review.external_id == data.external_id
            ):
                existing = review
                break

        fields: dict[str, Any] = {
            "connection_id": data.connection_id,
            "external_url": data.external_url,
            "author_name": data.author_name,
            "author_avatar_url": data.author_avatar_url,
            "rating": data.rating,
            "content": data.content,
            "published_at": data.published_at,
        }
        if data.reply is not None:
            fields.update(
                response_status=ResponseStatus.RESPONDED,
                response_text=data.reply.text,
                responded_at=data.reply.replied_at,
                response_source=data.platform,
            )

        if existing is None:
            review = CanonicalReview(
                id=str(uuid.uuid4()),
                business_id=data.business_id,
                platform=data.platform,
                external_id=data.external_id,
                **fields,
            )
        else:
            review = existing.model_copy(update=fields)
        self.reviews[review.id] = review
        return review

    async def get_review(self, review_id: str) -> CanonicalReview | None:
        return self.reviews.get(review_id)

    async def update_review(self, review_id: str, data: ReviewUpdate) -> CanonicalReview:
        review = self.reviews.get(review_id)
        if review is None:
            raise ReviewNotFoundError(review_id)
        updated = review.model_copy(update=data.model_dump(exclude_unset=True))
        self.reviews[review_id] = updated
        return updated

    async def aggregate_ratings(self, business_id: str, platform: Platform) -> tuple[int, float]:
        if self.fail_aggregate:
            raise PersistenceError("Failed to aggregate ratings")
        ratings = [
            r.rating
            for r in self.reviews.values()
            if r.business_id == business_id and r.platform == platform
        ]
        if not ratings:
            return 0, 0.0
        return len(ratings), sum(ratings) / len(ratings)


class StubAnalyzer(ReviewAnalyzer):
    """Returns a fixed result, or raises/returns None on demand."""

    def __init__(self, result: AnalysisResult | None = None, error: Exception | None = None) -> None:
        self.result = result or AnalysisResult(sentiment="negative", urgency_score=8, topics=["service_speed"])
        self.error = error
        self.calls: list[str] = []

    async def analyze(self, review: CanonicalReview) -> AnalysisResult | None:
        self.calls.append(review.external_id)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingAlerter(ReviewAlerter):
    def __init__(self, error: Exception | None = None) -> None:
        self.notified: list[str] = []
        self.error = error

    async def notify(self, review: CanonicalReview) -> None:
        if self.error is not None:
            raise self.error
        self.notified.append(review.external_id)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def repo() -> InMemorySyncRepository:
    return InMemorySyncRepository()


@pytest.fixture
def business_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def make_connection(repo, business_id) -> Callable[..., PlatformConnection]:
    """Create and store a connection with sensible defaults."""

    def _make(platform: Platform = Platform.GOOGLE, **overrides: Any) -> PlatformConnection:
        defaults: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "business_id": business_id,
            "platform": platform,
            "external_id": "loc123",
            "access_token": "access-token",
            "refresh_token": "refresh-token",
            "token_expires_at": NOW + timedelta(hours=1),
            "sync_status": SyncStatus.ACTIVE,
        }
        defaults.update(overrides)
        return repo.add_connection(PlatformConnection(**defaults))

    return _make


def make_normalized(external_id: str = "r1", **overrides: Any) -> NormalizedReview:
    defaults: dict[str, Any] = {
        "external_id": external_id,
        "author_name": "Jane Doe",
        "rating": 4,
        "content": "Great tacos, slow service",
        "published_at": datetime(2026, 2, 1, 18, 30, tzinfo=timezone.utc),
    }
    defaults.update(overrides)
    return NormalizedReview(**defaults)


@pytest.fixture
def normalized_review() -> Callable[..., NormalizedReview]:
    return make_normalized


@pytest.fixture
def analyzer() -> StubAnalyzer:
    return StubAnalyzer()


@pytest.fixture
def alerter() -> RecordingAlerter:
    return RecordingAlerter()
