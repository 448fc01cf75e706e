"""Initial review sync schema: platform_connections and reviews tables.

Revision ID: 001_initial_review_sync
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON, UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_review_sync"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "platform_connections",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("business_id", UUID(as_uuid=True), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("external_id", sa.String(200), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_status", sa.String(40), server_default="active", nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_reviews", sa.Integer(), server_default="0", nullable=False),
        sa.Column("average_rating", sa.Float(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("business_id", "platform", name="uq_connection_business_platform"),
    )

    op.create_table(
        "reviews",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("business_id", UUID(as_uuid=True), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("connection_id", UUID(as_uuid=True), nullable=False),
        sa.Column("external_id", sa.String(300), nullable=False),
        sa.Column("external_url", sa.String(1000), nullable=True),
        sa.Column("author_name", sa.String(300), nullable=False),
        sa.Column("author_avatar_url", sa.String(1000), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), server_default="", nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response_status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("response_text", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_source", sa.String(20), nullable=True),
        sa.Column("sentiment", sa.String(20), nullable=True),
        sa.Column("urgency_score", sa.Integer(), nullable=True),
        sa.Column("topics", JSON(), nullable=True),
        sa.Column("suggested_reply", sa.Text(), nullable=True),
        sa.Column("processing_status", sa.String(20), server_default="unprocessed", nullable=False),
        sa.Column("analyzed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "business_id",
            "platform",
            "external_id",
            name="uq_review_business_platform_external",
        ),
    )
    op.create_index("ix_reviews_business_platform", "reviews", ["business_id", "platform"])

    # Reviews still waiting for enrichment are looked up on every sync.
    op.create_index(
        "ix_reviews_unprocessed",
        "reviews",
        ["business_id", "platform"],
        postgresql_where=sa.text("processing_status <> 'processed'"),
    )


def downgrade() -> None:
    op.drop_index("ix_reviews_unprocessed", table_name="reviews")
    op.drop_index("ix_reviews_business_platform", table_name="reviews")
    op.drop_table("reviews")
    op.drop_table("platform_connections")
