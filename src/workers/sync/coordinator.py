"""
SyncCoordinator: admission control and job projections.

Admission is one transaction per source:
  1. lock the source row (SELECT … FOR UPDATE),
  2. manual rate limit (last MANUAL job of the source within the cooldown),
  3. one active (PENDING / IN_PROGRESS) job per source,
  4. insert the PENDING job.
The partial unique index on active jobs backs step 3: a concurrent insert
that slips through surfaces as IntegrityError and becomes SyncInProgress.

Triggers only create and enqueue jobs; the work runs on the ARQ worker.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, settings
from core.database import utcnow
from core.exceptions import (
    AdmissionError,
    NotFound,
    RateLimitExceeded,
    SyncInProgress,
    ValidationError,
)
from core.models import ACTIVE_JOB_STATUSES, JobStatus, JobType, ReviewSource, SyncJob
from workers.sync.models import (
    JobHistoryPage,
    JobStatusView,
    SkippedSource,
    TriggerResult,
)
from workers.sync.scheduler import next_daily_sync_time

logger = logging.getLogger(__name__)

Enqueue = Callable[[int], Awaitable[None]]

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def arq_job_id(job_id: int) -> str:
    """Deterministic ARQ job id, so a re-dispatch never runs a job twice."""
    return f"sync-job-{job_id}"


def arq_enqueuer(redis) -> Enqueue:
    """Build an ``Enqueue`` callable over an ``arq.ArqRedis`` pool."""

    async def enqueue(job_id: int) -> None:
        await redis.enqueue_job("run_sync_job", job_id, _job_id=arq_job_id(job_id))

    return enqueue


def to_status_view(job: SyncJob, now: datetime | None = None) -> JobStatusView:
    duration = None
    if job.started_at is not None:
        duration = (job.completed_at or now or utcnow()) - job.started_at
    return JobStatusView(
        job_id=job.id,
        source_id=job.review_source_id,
        job_type=job.job_type,
        status=job.status,
        reviews_fetched=job.reviews_fetched,
        reviews_new=job.reviews_new,
        reviews_updated=job.reviews_updated,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        duration=duration,
        error_message=job.error_message,
    )


class SyncCoordinator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        enqueue: Enqueue | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.enqueue = enqueue
        self.config = config
        self.clock = clock

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.config.manual_refresh_cooldown_hours)

    # ── Triggers ──────────────────────────────────────────────────────

    async def trigger_manual_sync(self, brand_id: int, source_id: int | None = None) -> TriggerResult:
        """
        Admit a MANUAL job for one source of the brand, or for all its active
        sources. A single-source trigger raises admission errors; a brand-wide
        trigger reports refused sources in ``skipped`` and only raises when
        nothing was admitted.
        """
        now = self.clock()
        source_ids = await self._brand_source_ids(brand_id, source_id)

        job_ids: list[int] = []
        skipped: list[SkippedSource] = []
        errors: list[AdmissionError] = []
        for sid in source_ids:
            try:
                job_ids.append(await self.admit(sid, JobType.MANUAL, enforce_rate_limit=True))
            except AdmissionError as exc:
                if source_id is not None:
                    raise
                errors.append(exc)
                skipped.append(_skipped(exc))

        if not job_ids and errors:
            raise errors[0]

        await self.dispatch(job_ids)
        return TriggerResult(job_ids=job_ids, next_eligible_at=now + self.cooldown, skipped=skipped)

    async def create_initial_job(self, source_id: int) -> int:
        """Admit the INITIAL import of a freshly created source and enqueue it."""
        job_id = await self.admit(
            source_id,
            JobType.INITIAL,
            enforce_rate_limit=False,
            reschedule_at=next_daily_sync_time(
                self.clock(), self.config.daily_sync_hour, self.config.sync_timezone
            ),
            only_if_unscheduled=True,
        )
        await self.dispatch([job_id])
        return job_id

    async def admit(
        self,
        source_id: int,
        job_type: JobType,
        *,
        enforce_rate_limit: bool,
        reschedule_at: datetime | None = None,
        only_if_unscheduled: bool = False,
    ) -> int:
        """
        Atomic admission of one job. Returns the new job id.

        ``reschedule_at`` moves the source's next scheduled sync inside the
        same transaction.
        """
        async with self.session_factory() as session:
            try:
                job = await self._admit(session, source_id, job_type, enforce_rate_limit)
                if reschedule_at is not None:
                    source = await session.get(ReviewSource, source_id)
                    if not only_if_unscheduled or source.next_scheduled_sync_at is None:
                        source.next_scheduled_sync_at = reschedule_at
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.warning("Source %d: active job created concurrently", source_id)
                raise SyncInProgress(source_id) from exc

        logger.info("Source %d: %s job #%d created", source_id, job_type.value, job.id)
        return job.id

    async def _admit(
        self,
        session: AsyncSession,
        source_id: int,
        job_type: JobType,
        enforce_rate_limit: bool,
    ) -> SyncJob:
        now = self.clock()

        source = (
            await session.execute(
                select(ReviewSource)
                .where(ReviewSource.id == source_id, ReviewSource.deleted_at.is_(None))
                .with_for_update()
            )
        ).scalar_one_or_none()
        if source is None:
            raise NotFound("ReviewSource", source_id)

        if enforce_rate_limit:
            last_manual_at = await self._last_manual_at(session, source_id)
            if last_manual_at is not None and now - last_manual_at < self.cooldown:
                next_available_at = last_manual_at + self.cooldown
                logger.warning("Source %d: manual refresh rate limited until %s", source_id, next_available_at)
                raise RateLimitExceeded(
                    source_id,
                    next_available_at - now,
                    next_available_at,
                    cooldown_hours=self.config.manual_refresh_cooldown_hours,
                )

        active_id = await self._active_job_id(session, source_id)
        if active_id is not None:
            logger.warning("Source %d: job #%d still active", source_id, active_id)
            raise SyncInProgress(source_id)

        job = SyncJob(
            review_source_id=source_id,
            job_type=job_type,
            status=JobStatus.PENDING,
            created_at=now,
        )
        session.add(job)
        await session.flush()
        return job

    @staticmethod
    async def _last_manual_at(session: AsyncSession, source_id: int) -> datetime | None:
        result = await session.execute(
            select(SyncJob.created_at)
            .where(SyncJob.review_source_id == source_id, SyncJob.job_type == JobType.MANUAL)
            .order_by(SyncJob.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _active_job_id(session: AsyncSession, source_id: int) -> int | None:
        result = await session.execute(
            select(SyncJob.id)
            .where(SyncJob.review_source_id == source_id, SyncJob.status.in_(ACTIVE_JOB_STATUSES))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def dispatch(self, job_ids: list[int]) -> None:
        """Hand admitted jobs to the worker pool. Jobs left PENDING are re-dispatched by the sweep."""
        if self.enqueue is None:
            return
        for job_id in job_ids:
            try:
                await self.enqueue(job_id)
            except Exception:
                logger.exception("Job %d: enqueue failed, left PENDING for re-dispatch", job_id)

    async def _brand_source_ids(self, brand_id: int, source_id: int | None) -> list[int]:
        stmt = select(ReviewSource.id).where(
            ReviewSource.brand_id == brand_id,
            ReviewSource.deleted_at.is_(None),
        )
        if source_id is not None:
            stmt = stmt.where(ReviewSource.id == source_id)
        else:
            stmt = stmt.where(ReviewSource.is_active.is_(True))

        async with self.session_factory() as session:
            ids = list((await session.execute(stmt.order_by(ReviewSource.id))).scalars())

        if not ids:
            if source_id is not None:
                raise NotFound("ReviewSource", source_id)
            raise NotFound("Active review sources of brand", brand_id)
        return ids

    # ── Projections ───────────────────────────────────────────────────

    async def get_job_status(self, job_id: int) -> JobStatusView:
        async with self.session_factory() as session:
            job = await session.get(SyncJob, job_id)
            if job is None:
                raise NotFound("SyncJob", job_id)
            return to_status_view(job, self.clock())

    async def list_jobs(self, source_id: int, page: int = 0, size: int = DEFAULT_PAGE_SIZE) -> JobHistoryPage:
        """Newest-first job history of a source. ``page`` is 0-based; ``size`` is capped."""
        if page < 0:
            raise ValidationError("page must be >= 0")
        if size <= 0:
            raise ValidationError("size must be > 0")
        size = min(size, MAX_PAGE_SIZE)

        async with self.session_factory() as session:
            total = (
                await session.execute(
                    select(func.count(SyncJob.id)).where(SyncJob.review_source_id == source_id)
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    select(SyncJob)
                    .where(SyncJob.review_source_id == source_id)
                    .order_by(SyncJob.created_at.desc(), SyncJob.id.desc())
                    .offset(page * size)
                    .limit(size)
                )
            ).scalars().all()

        now = self.clock()
        return JobHistoryPage(
            jobs=[to_status_view(job, now) for job in rows],
            page=page,
            size=size,
            total_items=total,
        )

    async def find_stuck_jobs(self, threshold: timedelta | None = None) -> list[SyncJob]:
        """IN_PROGRESS jobs started longer than ``threshold`` ago. Reported, never remediated."""
        threshold = threshold or timedelta(minutes=self.config.stuck_job_threshold_minutes)
        cutoff = self.clock() - threshold
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncJob)
                .where(SyncJob.status == JobStatus.IN_PROGRESS, SyncJob.started_at < cutoff)
                .order_by(SyncJob.started_at)
            )
            return list(result.scalars())

    async def find_pending_jobs(self) -> list[SyncJob]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncJob)
                .where(SyncJob.status == JobStatus.PENDING)
                .order_by(SyncJob.created_at, SyncJob.id)
            )
            return list(result.scalars())


def _skipped(exc: AdmissionError) -> SkippedSource:
    if isinstance(exc, RateLimitExceeded):
        return SkippedSource(exc.source_id, "RATE_LIMITED", exc.retry_after)
    return SkippedSource(exc.source_id, "SYNC_IN_PROGRESS")
