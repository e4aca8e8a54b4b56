"""
Sync Job Runner: executes one admitted SyncJob.

1. Claims the job (conditional PENDING → IN_PROGRESS update)
2. Resolves the fetch window for the job kind
3. Routes to the platform adapter via ProviderFactory
4. Fetches under a hard timeout and upserts through ReviewUpserter
5. Marks COMPLETED / FAILED and updates the source's last-sync fields
6. Recomputes dashboard aggregates for every touched day

Provider, timeout, storage and unexpected failures end in a FAILED job; they
are never raised to the queue. A cancelled job (ARQ job_timeout) is marked
FAILED before the cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

import httpx
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, settings
from core.database import utcnow
from core.exceptions import ReviewSyncError
from core.models import JobStatus, ReviewSource, SyncJob, SyncStatus
from workers.aggregates.recalculator import AggregateRecalculator
from workers.sentiment.classifier import BaseSentimentClassifier
from workers.sync.models import ProviderProfile, UpsertResult
from workers.sync.provider_factory import ProviderFactory
from workers.sync.upserter import ReviewUpserter
from workers.sync.windows import resolve_fetch_window

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000


class SyncJobRunner:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: httpx.AsyncClient,
        classifier: BaseSentimentClassifier,
        recalculator: AggregateRecalculator | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.client = client
        self.upserter = ReviewUpserter(classifier, clock=clock)
        self.recalculator = recalculator or AggregateRecalculator(clock)
        self.config = config
        self.clock = clock

    async def run(self, job_id: int) -> dict:
        async with self.session_factory() as session:
            if not await self._claim(session, job_id):
                logger.info("Job %d: not PENDING any more, nothing to run", job_id)
                return {"job_id": job_id, "status": None}

            progress = UpsertResult()
            try:
                return await self._run_claimed(session, job_id, progress)
            except asyncio.CancelledError:
                await session.rollback()
                await self._fail_cancelled(job_id, progress)
                raise

    async def _run_claimed(self, session: AsyncSession, job_id: int, progress: UpsertResult) -> dict:
        job = await session.get(SyncJob, job_id)
        source = await session.get(ReviewSource, job.review_source_id)
        logger.info("🔄 Job #%d (%s) started for source %d", job.id, job.job_type.value, source.id)

        if source.is_retired:
            job.mark_failed("Review source is retired", now=self.clock())
            await session.commit()
            return {"job_id": job_id, "status": job.status.value}

        error = await self._execute(session, job, source, progress)

        if error is not None:
            await session.rollback()
            await session.refresh(job)
            await session.refresh(source)
            job.mark_failed(error, now=self.clock())
            source.last_sync_status = SyncStatus.FAILED
            source.last_sync_error = error
        else:
            job.mark_completed(now=self.clock())
            source.last_sync_status = SyncStatus.SUCCESS
            source.last_sync_error = None
        source.last_sync_at = job.completed_at
        await session.commit()

        if progress.touched_days:
            await self.recalculator.on_reviews_changed(session, source.id, progress.touched_days)

        logger.info(
            "🏁 Job #%d %s, fetched=%d new=%d updated=%d",
            job.id, job.status.value, job.reviews_fetched, job.reviews_new, job.reviews_updated,
        )
        return {
            "job_id": job.id,
            "status": job.status.value,
            "fetched": job.reviews_fetched,
            "new": job.reviews_new,
            "updated": job.reviews_updated,
        }

    async def _claim(self, session: AsyncSession, job_id: int) -> bool:
        result = await session.execute(
            update(SyncJob)
            .where(SyncJob.id == job_id, SyncJob.status == JobStatus.PENDING)
            .values(status=JobStatus.IN_PROGRESS, started_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return result.rowcount == 1

    async def _fail_cancelled(self, job_id: int, progress: UpsertResult) -> None:
        """Worker cancelled the job (ARQ job_timeout or shutdown): close it out as FAILED."""
        message = "Sync job was cancelled before completion"
        async with self.session_factory() as session:
            job = await session.get(SyncJob, job_id)
            if job is None or job.is_terminal:
                return
            job.mark_failed(message, now=self.clock())
            source = await session.get(ReviewSource, job.review_source_id)
            source.last_sync_status = SyncStatus.FAILED
            source.last_sync_error = message
            source.last_sync_at = job.completed_at
            await session.commit()
            logger.error("Job %d: cancelled, marked FAILED", job_id)

            if progress.touched_days:
                await self.recalculator.on_reviews_changed(session, source.id, progress.touched_days)

    async def _execute(
        self,
        session: AsyncSession,
        job: SyncJob,
        source: ReviewSource,
        progress: UpsertResult,
    ) -> str | None:
        """Fetch and upsert. Returns a storable error message, or None on success."""
        try:
            window = resolve_fetch_window(
                job.job_type,
                self.clock(),
                await self._last_successful_sync_at(session, source.id),
                self.config,
            )
            await session.commit()  # release the connection during the fetch
            adapter = ProviderFactory.create(source.source_type, self.client)
            profile = ProviderProfile(
                source_id=source.id,
                external_profile_id=source.external_profile_id,
                profile_url=source.profile_url,
            )
            raw_reviews = await asyncio.wait_for(
                adapter.fetch_reviews(profile, source.credentials or {}, window),
                timeout=self.config.sync_job_timeout_seconds,
            )
            await self.upserter.sync_one(session, job, source, raw_reviews, result=progress)
        except asyncio.TimeoutError:
            logger.error("Job %d: provider fetch timed out", job.id)
            return f"Provider fetch timed out after {self.config.sync_job_timeout_seconds:g}s"
        except ReviewSyncError as exc:
            logger.error("Job %d failed: %s", job.id, exc)
            return str(exc)[:MAX_ERROR_LENGTH]
        except SQLAlchemyError as exc:
            logger.exception("Job %d: storage error", job.id)
            return f"Storage error: {type(exc).__name__}"
        except Exception as exc:
            logger.exception("Job %d: unexpected error", job.id)
            return f"Unexpected error: {type(exc).__name__}"
        return None

    @staticmethod
    async def _last_successful_sync_at(session: AsyncSession, source_id: int) -> datetime | None:
        """Start of the newest COMPLETED job: reviews published after it may be missing."""
        result = await session.execute(
            select(func.max(SyncJob.started_at)).where(
                SyncJob.review_source_id == source_id,
                SyncJob.status == JobStatus.COMPLETED,
            )
        )
        return result.scalar_one_or_none()
