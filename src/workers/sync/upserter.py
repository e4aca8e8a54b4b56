"""
ReviewUpserter: merges fetched reviews into storage.

For each raw review:
  absent                     → classify, insert, audit INITIAL      (new)
  present, fingerprint moved → reclassify, update, audit REANALYSIS (updated)
  present, same fingerprint  → nothing

Every record is committed together with the job counters, so a failure
halfway keeps what was already written and the counters tell the truth.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import utcnow
from core.models import ChangeReason, Review, ReviewSource, SyncJob
from workers.aggregates.recalculator import utc_day
from workers.sentiment.audit import append_sentiment_change
from workers.sentiment.classifier import BaseSentimentClassifier
from workers.sync.fingerprint import ContentFingerprinter
from workers.sync.models import RawReview, SentimentResult, UpsertResult

logger = logging.getLogger(__name__)


class ReviewUpserter:
    def __init__(
        self,
        classifier: BaseSentimentClassifier,
        fingerprinter: ContentFingerprinter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.classifier = classifier
        self.fingerprinter = fingerprinter or ContentFingerprinter()
        self.clock = clock

    async def sync_one(
        self,
        session: AsyncSession,
        job: SyncJob,
        source: ReviewSource,
        raw_reviews: Iterable[RawReview],
        result: UpsertResult | None = None,
    ) -> UpsertResult:
        """
        Upsert ``raw_reviews`` of ``source`` on behalf of ``job``.

        Pass ``result`` to keep the tally (and touched days) readable by the
        caller when a record raises midway.
        """
        result = result if result is not None else UpsertResult()

        for raw in raw_reviews:
            job.record_fetched()
            result.fetched += 1

            if not raw.external_id or not 1 <= raw.rating <= 5:
                logger.warning(
                    "Job %d: skipping invalid review %r (rating=%s)",
                    job.id, raw.external_id, raw.rating,
                )
                await session.commit()
                continue

            existing = await self._find(session, source.id, raw.external_id)
            if existing is None:
                if await self._insert(session, job, source, raw):
                    job.record_new()
                    result.new += 1
                    result.touched_days.add(utc_day(raw.published_at))
            elif not self.fingerprinter.matches(raw.text, existing.content_hash):
                await self._reanalyze(session, existing, raw)
                job.record_updated()
                result.updated += 1
                result.touched_days.add(utc_day(existing.published_at))
            else:
                logger.debug("Job %d: review %s unchanged", job.id, raw.external_id)

            await session.commit()

        logger.info(
            "Job %d: fetched=%d new=%d updated=%d",
            job.id, result.fetched, result.new, result.updated,
        )
        return result

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    async def _find(session: AsyncSession, source_id: int, external_id: str) -> Review | None:
        stmt = select(Review).where(
            Review.review_source_id == source_id,
            Review.external_review_id == external_id,
            Review.deleted_at.is_(None),
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _insert(
        self, session: AsyncSession, job: SyncJob, source: ReviewSource, raw: RawReview
    ) -> bool:
        verdict = await self.classifier.classify(raw.rating, raw.text)
        now = self.clock()
        try:
            async with session.begin_nested():
                review = Review(
                    review_source_id=source.id,
                    external_review_id=raw.external_id,
                    content=raw.text or "",
                    content_hash=self.fingerprinter.fingerprint(raw.text),
                    author_name=raw.author,
                    rating=raw.rating,
                    sentiment=verdict.label,
                    sentiment_confidence=_confidence(verdict),
                    published_at=raw.published_at,
                    fetched_at=now,
                )
                session.add(review)
                await session.flush()
                await append_sentiment_change(
                    session, review, verdict.label, ChangeReason.INITIAL, now=now
                )
        except IntegrityError:
            # Inserted concurrently by another job: the existing row wins.
            logger.info("Job %d: review %s inserted concurrently, skipped", job.id, raw.external_id)
            return False

        logger.debug("Job %d: new review %s (%s)", job.id, raw.external_id, verdict.label.value)
        return True

    async def _reanalyze(self, session: AsyncSession, review: Review, raw: RawReview) -> None:
        verdict = await self.classifier.classify(raw.rating, raw.text)
        now = self.clock()

        review.content = raw.text or ""
        review.content_hash = self.fingerprinter.fingerprint(raw.text)
        review.rating = raw.rating
        review.author_name = raw.author
        review.sentiment_confidence = _confidence(verdict)
        review.fetched_at = now
        await append_sentiment_change(session, review, verdict.label, ChangeReason.REANALYSIS, now=now)

        logger.debug("Review %d content changed, reanalyzed as %s", review.id, verdict.label.value)


def _confidence(verdict: SentimentResult) -> Decimal:
    return Decimal(str(round(verdict.confidence, 4)))
