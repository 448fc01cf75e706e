"""Tests for SyncRepository against an in-memory SQLite database.

Exercises the real SQLAlchemy models and queries through aiosqlite, with
the same session_factory pattern the application uses.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from src.reviewsync.core.database import Base
from src.reviewsync.sync.errors import (
    ConnectionNotFoundError,
    PersistenceError,
    ReviewNotFoundError,
)
from src.reviewsync.sync.models import PlatformConnectionModel
from src.reviewsync.sync.repository import SyncRepository
from src.reviewsync.sync.schemas import (
    ConnectionUpdate,
    Platform,
    ProcessingStatus,
    ProviderReply,
    ResponseStatus,
    ReviewUpdate,
    ReviewUpsert,
    SyncStatus,
)

BUSINESS_ID = str(uuid.uuid4())
PUBLISHED = datetime(2026, 2, 1, 18, 30, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def repository(engine) -> SyncRepository:
    async def session_factory():
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    return SyncRepository(session_factory=session_factory)


@pytest_asyncio.fixture
async def connection_id(engine) -> str:
    """Insert one Google connection row and return its id."""
    async with AsyncSession(engine, expire_on_commit=False) as session:
        model = PlatformConnectionModel(
            business_id=uuid.UUID(BUSINESS_ID),
            platform=Platform.GOOGLE.value,
            external_id="loc123",
            access_token="access-token",
            refresh_token="refresh-token",
            token_expires_at=datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc),
        )
        session.add(model)
        await session.commit()
        return str(model.id)


def _upsert(connection_id: str, external_id: str = "r1", **overrides) -> ReviewUpsert:
    fields = {
        "business_id": BUSINESS_ID,
        "platform": Platform.GOOGLE,
        "connection_id": connection_id,
        "external_id": external_id,
        "author_name": "Jane Doe",
        "rating": 4,
        "content": "Great tacos, slow service",
        "published_at": PUBLISHED,
    }
    fields.update(overrides)
    return ReviewUpsert(**fields)


class TestConnections:
    async def test_get_connection(self, repository, connection_id):
        connection = await repository.get_connection(connection_id)

        assert connection.id == connection_id
        assert connection.business_id == BUSINESS_ID
        assert connection.platform is Platform.GOOGLE
        assert connection.sync_status is SyncStatus.ACTIVE
        assert connection.total_reviews == 0
        assert connection.token_expires_at.tzinfo is not None

    async def test_missing_and_malformed_ids(self, repository, connection_id):
        assert await repository.get_connection(str(uuid.uuid4())) is None
        assert await repository.get_connection("not-a-uuid") is None

    async def test_update_writes_only_set_fields(self, repository, connection_id):
        synced_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        updated = await repository.update_connection(
            connection_id,
            ConnectionUpdate(
                total_reviews=2,
                average_rating=4.5,
                sync_status=SyncStatus.ACTIVE,
                last_synced_at=synced_at,
            ),
        )

        assert updated.total_reviews == 2
        assert updated.average_rating == 4.5
        assert updated.last_synced_at == synced_at
        assert updated.access_token == "access-token"
        assert updated.external_id == "loc123"

    async def test_update_status(self, repository, connection_id):
        await repository.update_connection(
            connection_id, ConnectionUpdate(sync_status=SyncStatus.ERROR_REFRESH_FAILED)
        )

        connection = await repository.get_connection(connection_id)
        assert connection.sync_status is SyncStatus.ERROR_REFRESH_FAILED

    async def test_update_missing_connection(self, repository):
        with pytest.raises(ConnectionNotFoundError):
            await repository.update_connection(str(uuid.uuid4()), ConnectionUpdate(total_reviews=1))

    async def test_list_connections_filters(self, repository, connection_id):
        assert [c.id for c in await repository.list_connections()] == [connection_id]
        assert await repository.list_connections(platform=Platform.YELP) == []
        assert await repository.list_connections(statuses=[SyncStatus.ERROR_API_CALL]) == []


class TestReviews:
    async def test_insert_defaults(self, repository, connection_id):
        review = await repository.upsert_review(_upsert(connection_id))

        assert review.external_id == "r1"
        assert review.connection_id == connection_id
        assert review.response_status is ResponseStatus.PENDING
        assert review.processing_status is ProcessingStatus.UNPROCESSED
        assert review.topics == []
        assert review.published_at == PUBLISHED
        assert review.needs_analysis

    async def test_upsert_is_keyed_on_external_id(self, repository, connection_id):
        first = await repository.upsert_review(_upsert(connection_id, rating=2))
        second = await repository.upsert_review(_upsert(connection_id, rating=5, content="Much better"))

        assert second.id == first.id
        assert second.rating == 5
        assert second.content == "Much better"

    async def test_upsert_keeps_enrichment(self, repository, connection_id):
        review = await repository.upsert_review(_upsert(connection_id))
        await repository.update_review(
            review.id,
            ReviewUpdate(
                sentiment="mixed",
                urgency_score=4,
                topics=["service_speed"],
                processing_status=ProcessingStatus.PROCESSED,
                analyzed_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            ),
        )

        again = await repository.upsert_review(_upsert(connection_id))

        assert again.processing_status is ProcessingStatus.PROCESSED
        assert again.sentiment == "mixed"
        assert again.topics == ["service_speed"]
        assert not again.needs_analysis

    async def test_provider_reply_overwrites_local_reply(self, repository, connection_id):
        review = await repository.upsert_review(_upsert(connection_id))
        await repository.update_review(
            review.id,
            ReviewUpdate(response_status=ResponseStatus.RESPONDED, response_text="local"),
        )

        without_reply = await repository.upsert_review(_upsert(connection_id))
        assert without_reply.response_text == "local"

        with_reply = await repository.upsert_review(
            _upsert(connection_id, reply=ProviderReply(text="from provider"))
        )
        assert with_reply.response_text == "from provider"
        assert with_reply.response_source is Platform.GOOGLE

    async def test_get_and_update_missing_review(self, repository):
        assert await repository.get_review("not-a-uuid") is None
        with pytest.raises(ReviewNotFoundError):
            await repository.update_review(
                str(uuid.uuid4()), ReviewUpdate(processing_status=ProcessingStatus.FAILED)
            )

    async def test_aggregate_ratings(self, repository, connection_id):
        for external_id, rating in (("a", 5), ("b", 4), ("c", 0)):
            await repository.upsert_review(_upsert(connection_id, external_id, rating=rating))

        count, mean = await repository.aggregate_ratings(BUSINESS_ID, Platform.GOOGLE)

        assert count == 3
        assert mean == pytest.approx(3.0)
        assert await repository.aggregate_ratings(BUSINESS_ID, Platform.YELP) == (0, 0.0)


class TestStorageFailures:
    async def test_sqlalchemy_errors_become_persistence_errors(self, connection_id):
        async def broken_factory():
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
            yield  # pragma: no cover

        repository = SyncRepository(session_factory=broken_factory)

        with pytest.raises(PersistenceError):
            await repository.get_connection(connection_id)
        with pytest.raises(PersistenceError):
            await repository.upsert_review(_upsert(connection_id))
        with pytest.raises(PersistenceError):
            await repository.aggregate_ratings(BUSINESS_ID, Platform.GOOGLE)

    async def test_expiry_window_round_trips(self, repository, connection_id):
        expires = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc) + timedelta(seconds=3600)

        updated = await repository.update_connection(
            connection_id, ConnectionUpdate(access_token="fresh", token_expires_at=expires)
        )

        assert updated.token_expires_at == expires
        assert updated.access_token == "fresh"
