"""Data models exchanged inside the sync pipeline (raw reviews, windows, views)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from core.models import JobStatus, JobType, Sentiment


@dataclass(frozen=True, slots=True)
class RawReview:
    """A review as returned by a provider, before any storage decision."""

    external_id: str
    text: str
    author: str | None
    rating: int                        # 1 – 5
    published_at: datetime


@dataclass(frozen=True, slots=True)
class FetchWindow:
    """Closed time interval of published reviews to fetch."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True, slots=True)
class ProviderProfile:
    """What an adapter needs to know about the source it fetches."""

    source_id: int
    external_profile_id: str
    profile_url: str


@dataclass(frozen=True, slots=True)
class SentimentResult:
    label: Sentiment
    confidence: float                  # 0.0 – 1.0


@dataclass(slots=True)
class UpsertResult:
    """Outcome of one upsert pass. ``touched_days`` feed the aggregate recalculation."""

    fetched: int = 0
    new: int = 0
    updated: int = 0
    touched_days: set[date] = field(default_factory=set)


# ── Coordinator projections ───────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class SkippedSource:
    source_id: int
    reason: str                        # RATE_LIMITED | SYNC_IN_PROGRESS
    retry_after: timedelta | None = None


@dataclass(frozen=True, slots=True)
class TriggerResult:
    job_ids: list[int]
    next_eligible_at: datetime
    skipped: list[SkippedSource] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class JobStatusView:
    job_id: int
    source_id: int
    job_type: JobType
    status: JobStatus
    reviews_fetched: int
    reviews_new: int
    reviews_updated: int
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    duration: timedelta | None
    error_message: str | None


@dataclass(frozen=True, slots=True)
class JobHistoryPage:
    jobs: list[JobStatusView]
    page: int
    size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return (self.total_items + self.size - 1) // self.size if self.size else 0

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0


@dataclass(frozen=True, slots=True)
class ScheduledTickResult:
    job_ids: list[int] = field(default_factory=list)
    skipped_source_ids: list[int] = field(default_factory=list)
    failed_source_ids: list[int] = field(default_factory=list)
