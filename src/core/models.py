"""
SQLAlchemy 2.0 ORM Models: Review Sync Engine
===============================================

Conventions:
  - snake_case names
  - BIGINT PKs (auto-increment)
  - Explicit FKs
  - UTC, timezone-aware timestamps
  - Retirement through ``deleted_at`` (rows are never hard-deleted)

Tables are grouped by functional area:
  1. Configuration (review sources)
  2. Content (reviews + append-only sentiment audit)
  3. Operational (sync jobs)
  4. Results (dashboard aggregates)
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base, BigIntPK, UTCDateTime, utcnow
from core.exceptions import InvalidJobTransition


# ══════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════

class SourceType(str, PyEnum):
    GOOGLE = "GOOGLE"
    FACEBOOK = "FACEBOOK"
    TRUSTPILOT = "TRUSTPILOT"


class SyncStatus(str, PyEnum):
    """Outcome of the last finished sync of a source."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Sentiment(str, PyEnum):
    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"


class ChangeReason(str, PyEnum):
    INITIAL = "INITIAL"
    USER_CORRECTION = "USER_CORRECTION"
    REANALYSIS = "REANALYSIS"


class JobType(str, PyEnum):
    INITIAL = "INITIAL"      # first 90-day import
    SCHEDULED = "SCHEDULED"  # daily cron
    MANUAL = "MANUAL"        # user refresh, rate limited


class JobStatus(str, PyEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.IN_PROGRESS)

_JSON = JSON().with_variant(JSONB, "postgresql")


# ══════════════════════════════════════════════════════════════════════
# 1. CONFIGURATION
# ══════════════════════════════════════════════════════════════════════

class ReviewSource(Base):
    """
    One monitored profile on a review platform (a Google place, a Facebook
    page, a Trustpilot business unit). Brands are owned elsewhere; only the
    id is kept here.
    """
    __tablename__ = "review_source"
    __table_args__ = (
        Index(
            "uq_review_source_brand_type_profile",
            "brand_id", "source_type", "external_profile_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_review_source_next_sync", "next_scheduled_sync_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    source_type: Mapped[SourceType] = mapped_column(Enum(SourceType), nullable=False)
    profile_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    external_profile_id: Mapped[str] = mapped_column(String(255), nullable=False)
    credentials: Mapped[dict | None] = mapped_column(_JSON, nullable=True)  # encrypted at rest by the owner
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_sync_status: Mapped[SyncStatus | None] = mapped_column(Enum(SyncStatus), nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_scheduled_sync_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    reviews: Mapped[list["Review"]] = relationship("Review", back_populates="source")
    sync_jobs: Mapped[list["SyncJob"]] = relationship("SyncJob", back_populates="source")

    @property
    def is_retired(self) -> bool:
        return self.deleted_at is not None

    def retire(self, when: datetime | None = None) -> None:
        self.deleted_at = when or utcnow()
        self.is_active = False


# ══════════════════════════════════════════════════════════════════════
# 2. CONTENT
# ══════════════════════════════════════════════════════════════════════

class Review(Base):
    """
    One customer review. ``sentiment`` mirrors the newest SentimentChange;
    ``content_hash`` is the fingerprint used for change detection.
    """
    __tablename__ = "review"
    __table_args__ = (
        Index(
            "uq_review_source_external",
            "review_source_id", "external_review_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_review_source_published", "review_source_id", "published_at"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    review_source_id: Mapped[int] = mapped_column(ForeignKey("review_source.id"), nullable=False)
    external_review_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    author_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rating: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    sentiment: Mapped[Sentiment] = mapped_column(Enum(Sentiment), nullable=False)
    sentiment_confidence: Mapped[Decimal | None] = mapped_column(Numeric(5, 4), nullable=True)
    published_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    source: Mapped["ReviewSource"] = relationship("ReviewSource", back_populates="reviews")
    sentiment_changes: Mapped[list["SentimentChange"]] = relationship(
        "SentimentChange", back_populates="review", order_by="SentimentChange.changed_at.desc()"
    )


class SentimentChange(Base):
    """
    Append-only audit of every sentiment transition of a review.
    Never updated, never deleted. ``changed_by_user_id`` NULL = system.
    """
    __tablename__ = "sentiment_change"
    __table_args__ = (
        Index("ix_sentiment_change_review_changed", "review_id", "changed_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    review_id: Mapped[int] = mapped_column(ForeignKey("review.id"), nullable=False)
    old_sentiment: Mapped[Sentiment | None] = mapped_column(Enum(Sentiment), nullable=True)
    new_sentiment: Mapped[Sentiment] = mapped_column(Enum(Sentiment), nullable=False)
    changed_by_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    change_reason: Mapped[ChangeReason] = mapped_column(Enum(ChangeReason), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Relationships
    review: Mapped["Review"] = relationship("Review", back_populates="sentiment_changes")


# ══════════════════════════════════════════════════════════════════════
# 3. OPERATIONAL
# ══════════════════════════════════════════════════════════════════════

class SyncJob(Base):
    """
    One synchronization attempt of a source.

    Lifecycle: PENDING → IN_PROGRESS → COMPLETED | FAILED. Transitions are
    monotonic. The partial unique index keeps at most one active
    (PENDING / IN_PROGRESS) job per source, whatever created it.
    """
    __tablename__ = "sync_job"
    __table_args__ = (
        Index(
            "uq_sync_job_active_source",
            "review_source_id",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'IN_PROGRESS')"),
            sqlite_where=text("status IN ('PENDING', 'IN_PROGRESS')"),
        ),
        Index("ix_sync_job_source_created", "review_source_id", "created_at"),
        Index("ix_sync_job_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    review_source_id: Mapped[int] = mapped_column(ForeignKey("review_source.id"), nullable=False)
    job_type: Mapped[JobType] = mapped_column(Enum(JobType), nullable=False)
    status: Mapped[JobStatus] = mapped_column(Enum(JobStatus), nullable=False, default=JobStatus.PENDING)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reviews_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviews_new: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviews_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    source: Mapped["ReviewSource"] = relationship("ReviewSource", back_populates="sync_jobs")

    # ── State machine ─────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None:
            return None
        return (self.completed_at or utcnow()) - self.started_at

    def _transition(self, allowed_from: tuple[JobStatus, ...], target: JobStatus) -> None:
        if self.status not in allowed_from:
            raise InvalidJobTransition(self.id, self.status, target)
        self.status = target

    def mark_started(self, now: datetime | None = None) -> None:
        self._transition((JobStatus.PENDING,), JobStatus.IN_PROGRESS)
        self.started_at = now or utcnow()

    def mark_completed(self, now: datetime | None = None) -> None:
        self._transition((JobStatus.IN_PROGRESS,), JobStatus.COMPLETED)
        self.completed_at = now or utcnow()

    def mark_failed(self, message: str, now: datetime | None = None) -> None:
        self._transition(ACTIVE_JOB_STATUSES, JobStatus.FAILED)
        self.completed_at = now or utcnow()
        self.error_message = message

    def record_fetched(self) -> None:
        self.reviews_fetched = (self.reviews_fetched or 0) + 1

    def record_new(self) -> None:
        self.reviews_new = (self.reviews_new or 0) + 1

    def record_updated(self) -> None:
        self.reviews_updated = (self.reviews_updated or 0) + 1


# ══════════════════════════════════════════════════════════════════════
# 4. RESULTS
# ══════════════════════════════════════════════════════════════════════

class DashboardAggregate(Base):
    """
    Per (source, day) rollup. Always re-derivable from Review rows and only
    ever written by the aggregate recalculator.
    """
    __tablename__ = "dashboard_aggregate"
    __table_args__ = (
        UniqueConstraint("review_source_id", "date", name="uq_dashboard_aggregate_source_date"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    review_source_id: Mapped[int] = mapped_column(ForeignKey("review_source.id"), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_rating: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    positive_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    negative_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    neutral_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_calculated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
