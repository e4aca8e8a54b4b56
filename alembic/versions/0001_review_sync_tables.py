"""review_sync_tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

Adds:
- review_source (monitored platform profiles)
- review + sentiment_change (content and append-only sentiment audit)
- sync_job (one row per sync attempt, at most one active per source)
- dashboard_aggregate (per source/day rollups)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

source_type = sa.Enum("GOOGLE", "FACEBOOK", "TRUSTPILOT", name="sourcetype")
sync_status = sa.Enum("SUCCESS", "FAILED", name="syncstatus")
sentiment = sa.Enum("POSITIVE", "NEUTRAL", "NEGATIVE", name="sentiment")
change_reason = sa.Enum("INITIAL", "USER_CORRECTION", "REANALYSIS", name="changereason")
job_type = sa.Enum("INITIAL", "SCHEDULED", "MANUAL", name="jobtype")
job_status = sa.Enum("PENDING", "IN_PROGRESS", "COMPLETED", "FAILED", name="jobstatus")

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
_TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    # -- Review sources --
    op.create_table(
        "review_source",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("brand_id", sa.BigInteger(), nullable=False),
        sa.Column("source_type", source_type, nullable=False),
        sa.Column("profile_url", sa.String(length=2048), nullable=False),
        sa.Column("external_profile_id", sa.String(length=255), nullable=False),
        sa.Column("credentials", _JSON, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync_at", _TS, nullable=True),
        sa.Column("last_sync_status", sync_status, nullable=True),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column("next_scheduled_sync_at", _TS, nullable=True),
        sa.Column("created_at", _TS, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _TS, server_default=sa.func.now(), nullable=False),
        sa.Column("deleted_at", _TS, nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_review_source_brand_id", "review_source", ["brand_id"])
    op.create_index("ix_review_source_next_sync", "review_source", ["next_scheduled_sync_at"])
    op.create_index(
        "uq_review_source_brand_type_profile",
        "review_source",
        ["brand_id", "source_type", "external_profile_id"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    # -- Reviews --
    op.create_table(
        "review",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("review_source_id", _ID, sa.ForeignKey("review_source.id"), nullable=False),
        sa.Column("external_review_id", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("author_name", sa.String(length=255), nullable=True),
        sa.Column("rating", sa.SmallInteger(), nullable=False),
        sa.Column("sentiment", sentiment, nullable=False),
        sa.Column("sentiment_confidence", sa.Numeric(5, 4), nullable=True),
        sa.Column("published_at", _TS, nullable=False),
        sa.Column("fetched_at", _TS, nullable=False),
        sa.Column("created_at", _TS, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _TS, server_default=sa.func.now(), nullable=False),
        sa.Column("deleted_at", _TS, nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )
    op.create_index(
        "uq_review_source_external",
        "review",
        ["review_source_id", "external_review_id"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index("ix_review_source_published", "review", ["review_source_id", "published_at"])

    # -- Sentiment audit (append-only) --
    op.create_table(
        "sentiment_change",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("review_id", _ID, sa.ForeignKey("review.id"), nullable=False),
        sa.Column("old_sentiment", sentiment, nullable=True),
        sa.Column("new_sentiment", sentiment, nullable=False),
        sa.Column("changed_by_user_id", sa.BigInteger(), nullable=True),
        sa.Column("change_reason", change_reason, nullable=False),
        sa.Column("changed_at", _TS, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sentiment_change_review_changed", "sentiment_change", ["review_id", "changed_at"])

    # -- Sync jobs --
    op.create_table(
        "sync_job",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("review_source_id", _ID, sa.ForeignKey("review_source.id"), nullable=False),
        sa.Column("job_type", job_type, nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("created_at", _TS, nullable=False),
        sa.Column("started_at", _TS, nullable=True),
        sa.Column("completed_at", _TS, nullable=True),
        sa.Column("reviews_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reviews_new", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reviews_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_sync_job_active_source",
        "sync_job",
        ["review_source_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'IN_PROGRESS')"),
        sqlite_where=sa.text("status IN ('PENDING', 'IN_PROGRESS')"),
    )
    op.create_index("ix_sync_job_source_created", "sync_job", ["review_source_id", "created_at"])
    op.create_index("ix_sync_job_status_created", "sync_job", ["status", "created_at"])

    # -- Dashboard aggregates --
    op.create_table(
        "dashboard_aggregate",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("review_source_id", _ID, sa.ForeignKey("review_source.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_reviews", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("positive_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("negative_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("neutral_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_calculated_at", _TS, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("review_source_id", "date", name="uq_dashboard_aggregate_source_date"),
    )


def downgrade() -> None:
    op.drop_table("dashboard_aggregate")
    op.drop_index("ix_sync_job_status_created", table_name="sync_job")
    op.drop_index("ix_sync_job_source_created", table_name="sync_job")
    op.drop_index("uq_sync_job_active_source", table_name="sync_job")
    op.drop_table("sync_job")
    op.drop_index("ix_sentiment_change_review_changed", table_name="sentiment_change")
    op.drop_table("sentiment_change")
    op.drop_index("ix_review_source_published", table_name="review")
    op.drop_index("uq_review_source_external", table_name="review")
    op.drop_table("review")
    op.drop_index("uq_review_source_brand_type_profile", table_name="review_source")
    op.drop_index("ix_review_source_next_sync", table_name="review_source")
    op.drop_index("ix_review_source_brand_id", table_name="review_source")
    op.drop_table("review_source")

    bind = op.get_bind()
    for enum in (job_status, job_type, change_reason, sentiment, sync_status, source_type):
        enum.drop(bind, checkfirst=True)
