"""Review sync persistence models.

Two SQLAlchemy models:
- PlatformConnectionModel: a business's link to one review platform
- ReviewModel: the canonical, locally-owned copy of one provider review

Enum-valued columns are stored as short strings; the pydantic schemas in
``sync.schemas`` own the closed value sets.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.reviewsync.core.database import Base


class PlatformConnectionModel(Base):
    """Authorization and sync metadata linking one business to one platform.

    One connection per platform per business, enforced by unique constraint.
    Mutated by the sync pipeline (tokens, status, stats) and by external
    connect/disconnect flows; never deleted by the sync engine.
    """

    __tablename__ = "platform_connections"
    __table_args__ = (
        UniqueConstraint(
            "business_id",
            "platform",
            name="uq_connection_business_platform",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sync_status: Mapped[str] = mapped_column(
        String(40), default="active", server_default="active", nullable=False
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    total_reviews: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    average_rating: Mapped[float] = mapped_column(
        Float, default=0.0, server_default="0", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class ReviewModel(Base):
    """Canonical review, independent of the platform it came from.

    The (business_id, platform, external_id) triple is the upsert key.
    ``processing_status`` marks whether enrichment (sentiment analysis)
    still has to run for this row.
    """

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint(
            "business_id",
            "platform",
            "external_id",
            name="uq_review_business_platform_external",
        ),
        Index("ix_reviews_business_platform", "business_id", "platform"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    connection_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    external_id: Mapped[str] = mapped_column(String(300), nullable=False)
    external_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    author_name: Mapped[str] = mapped_column(String(300), nullable=False)
    author_avatar_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", server_default="", nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    response_status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", nullable=False
    )
    response_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    response_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sentiment: Mapped[str | None] = mapped_column(String(20), nullable=True)
    urgency_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    topics: Mapped[list] = mapped_column(JSON, default=list)
    suggested_reply: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_status: Mapped[str] = mapped_column(
        String(20), default="unprocessed", server_default="unprocessed", nullable=False
    )
    analyzed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
