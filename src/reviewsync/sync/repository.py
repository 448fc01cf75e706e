"""Review sync repository -- async storage boundary for connections and reviews.

Provides SyncRepository with the session_factory callable pattern: the
repository is constructed with a factory and passed explicitly into the
orchestrator, token manager and stats aggregator. Handles serialization
between SQLAlchemy models and the pydantic schemas in ``sync.schemas``.

SQLAlchemy failures are re-raised as PersistenceError so the pipeline can
tell a storage problem from a provider problem.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from enum import Enum

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.reviewsync.sync.errors import (
    ConnectionNotFoundError,
    PersistenceError,
    ReviewNotFoundError,
)
from src.reviewsync.sync.models import PlatformConnectionModel, ReviewModel
from src.reviewsync.sync.schemas import (
    CanonicalReview,
    ConnectionUpdate,
    Platform,
    PlatformConnection,
    ProcessingStatus,
    ResponseStatus,
    ReviewUpdate,
    ReviewUpsert,
    SyncStatus,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


async def _load(session: AsyncSession, model_cls: type, row_id: str):
    """Get a row by primary key. Malformed ids look up as missing rows."""
    try:
        key = uuid.UUID(row_id)
    except (TypeError, ValueError):
        return None
    return await session.get(model_cls, key)


def _column_value(value: object) -> object:
    return value.value if isinstance(value, Enum) else value


def _model_to_connection(model: PlatformConnectionModel) -> PlatformConnection:
    """Convert PlatformConnectionModel to PlatformConnection schema."""
    return PlatformConnection(
        id=str(model.id),
        business_id=str(model.business_id),
        platform=Platform(model.platform),
        external_id=model.external_id,
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        token_expires_at=_aware(model.token_expires_at),
        sync_status=SyncStatus(model.sync_status),
        last_synced_at=_aware(model.last_synced_at),
        total_reviews=model.total_reviews or 0,
        average_rating=model.average_rating or 0.0,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
    )


def _model_to_review(model: ReviewModel) -> CanonicalReview:
    """Convert ReviewModel to CanonicalReview schema."""
    return CanonicalReview(
        id=str(model.id),
        business_id=str(model.business_id),
        platform=Platform(model.platform),
        connection_id=str(model.connection_id),
        external_id=model.external_id,
        external_url=model.external_url,
        author_name=model.author_name,
        author_avatar_url=model.author_avatar_url,
        rating=model.rating,
        content=model.content or "",
        published_at=_aware(model.published_at),
        response_status=ResponseStatus(model.response_status),
        response_text=model.response_text,
        responded_at=_aware(model.responded_at),
        response_source=Platform(model.response_source) if model.response_source else None,
        sentiment=model.sentiment,
        urgency_score=model.urgency_score,
        topics=list(model.topics or []),
        suggested_reply=model.suggested_reply,
        processing_status=ProcessingStatus(model.processing_status),
        analyzed_at=_aware(model.analyzed_at),
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
    )


def _apply_provider_fields(model: ReviewModel, data: ReviewUpsert) -> None:
    """Overwrite provider-owned fields. Reply fields only move when a reply is reported."""
    model.connection_id = uuid.UUID(data.connection_id)
    model.external_url = data.external_url
    model.author_name = data.author_name
    model.author_avatar_url = data.author_avatar_url
    model.rating = data.rating
    model.content = data.content
    model.published_at = data.published_at

    if data.reply is not None:
        model.response_status = ResponseStatus.RESPONDED.value
        model.response_text = data.reply.text
        model.responded_at = data.reply.replied_at
        model.response_source = data.platform.value


# ── Repository ──────────────────────────────────────────────────────────────


class SyncRepository:
    """Async CRUD for platform connections and canonical reviews.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Connections ─────────────────────────────────────────────────────────

    async def get_connection(self, connection_id: str) -> PlatformConnection | None:
        """Get a connection by ID, None if it does not exist."""
        try:
            async for session in self._session_factory():
                model = await _load(session, PlatformConnectionModel, connection_id)
                if model is None:
                    return None
                return _model_to_connection(model)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load connection {connection_id}") from exc

    async def list_connections(
        self,
        platform: Platform | None = None,
        statuses: list[SyncStatus] | None = None,
    ) -> list[PlatformConnection]:
        """List connections, optionally filtered by platform and sync status."""
        try:
            async for session in self._session_factory():
                stmt = select(PlatformConnectionModel).order_by(
                    PlatformConnectionModel.created_at
                )
                if platform is not None:
                    stmt = stmt.where(PlatformConnectionModel.platform == platform.value)
                if statuses:
                    stmt = stmt.where(
                        PlatformConnectionModel.sync_status.in_([s.value for s in statuses])
                    )
                result = await session.execute(stmt)
                return [_model_to_connection(m) for m in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list connections") from exc

    async def update_connection(
        self, connection_id: str, data: ConnectionUpdate
    ) -> PlatformConnection:
        """Write the explicitly-set fields of ``data`` and return the fresh row.

        Raises:
            ConnectionNotFoundError: If the connection does not exist.
            PersistenceError: On any storage failure.
        """
        fields = data.model_dump(exclude_unset=True)
        try:
            async for session in self._session_factory():
                model = await _load(session, PlatformConnectionModel, connection_id)
                if model is None:
                    raise ConnectionNotFoundError(connection_id)
                for name, value in fields.items():
                    setattr(model, name, _column_value(value))
                await session.commit()
                await session.refresh(model)
                logger.debug(
                    "repository.connection_updated",
                    connection_id=connection_id,
                    fields=list(fields),
                )
                return _model_to_connection(model)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update connection {connection_id}") from exc

    # ── Reviews ─────────────────────────────────────────────────────────────

    async def upsert_review(self, data: ReviewUpsert) -> CanonicalReview:
        """Insert or update a review keyed by (business_id, platform, external_id).

        New rows start ``pending`` / ``unprocessed``. Existing rows keep their
        enrichment and any local reply unless the provider reports one.
        """
        try:
            async for session in self._session_factory():
                stmt = select(ReviewModel).where(
                    ReviewModel.business_id == uuid.UUID(data.business_id),
                    ReviewModel.platform == data.platform.value,
                    ReviewModel.external_id == data.external_id,
                )
                result = await session.execute(stmt)
                model = result.scalar_one_or_none()
                if model is None:
                    model = ReviewModel(
                        business_id=uuid.UUID(data.business_id),
                        platform=data.platform.value,
                        external_id=data.external_id,
                        response_status=ResponseStatus.PENDING.value,
                        processing_status=ProcessingStatus.UNPROCESSED.value,
                        topics=[],
                    )
                    session.add(model)
                _apply_provider_fields(model, data)
                await session.commit()
                await session.refresh(model)
                return _model_to_review(model)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to upsert review {data.platform.value}:{data.external_id}"
            ) from exc

    async def get_review(self, review_id: str) -> CanonicalReview | None:
        """Get a canonical review by ID."""
        try:
            async for session in self._session_factory():
                model = await _load(session, ReviewModel, review_id)
                if model is None:
                    return None
                return _model_to_review(model)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load review {review_id}") from exc

    async def update_review(self, review_id: str, data: ReviewUpdate) -> CanonicalReview:
        """Write the explicitly-set fields of ``data`` to a review."""
        fields = data.model_dump(exclude_unset=True)
        try:
            async for session in self._session_factory():
                model = await _load(session, ReviewModel, review_id)
                if model is None:
                    raise ReviewNotFoundError(review_id)
                for name, value in fields.items():
                    setattr(model, name, _column_value(value))
                await session.commit()
                await session.refresh(model)
                return _model_to_review(model)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update review {review_id}") from exc

    async def aggregate_ratings(
        self, business_id: str, platform: Platform
    ) -> tuple[int, float]:
        """Return (count, mean rating) over all reviews of one business/platform.

        The mean is unrounded; 0.0 when there are no rows.
        """
        try:
            async for session in self._session_factory():
                stmt = select(
                    func.count(ReviewModel.id),
                    func.avg(ReviewModel.rating),
                ).where(
                    ReviewModel.business_id == uuid.UUID(business_id),
                    ReviewModel.platform == platform.value,
                )
                result = await session.execute(stmt)
                count, average = result.one()
                return int(count or 0), float(average or 0.0)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to aggregate ratings for {business_id}/{platform.value}"
            ) from exc
