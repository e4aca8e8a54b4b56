"""
User sentiment corrections.

Synchronous path: audit append, review update, commit, then the aggregate of
the review's published day is recomputed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFound
from core.models import ChangeReason, Review, ReviewSource, Sentiment
from workers.aggregates.recalculator import AggregateRecalculator, utc_day
from workers.sentiment.audit import append_sentiment_change

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CorrectionResult:
    review_id: int
    old_sentiment: Sentiment
    new_sentiment: Sentiment
    change_id: int | None              # None when nothing changed


async def get_brand_review(session: AsyncSession, brand_id: int, review_id: int) -> Review:
    result = await session.execute(
        select(Review)
        .join(ReviewSource, Review.review_source_id == ReviewSource.id)
        .where(
            Review.id == review_id,
            Review.deleted_at.is_(None),
            ReviewSource.brand_id == brand_id,
        )
    )
    review = result.scalar_one_or_none()
    if review is None:
        raise NotFound("Review", review_id)
    return review


async def update_sentiment(
    session: AsyncSession,
    brand_id: int,
    review_id: int,
    new_sentiment: Sentiment,
    actor_user_id: int,
    recalculator: AggregateRecalculator | None = None,
    now: datetime | None = None,
) -> CorrectionResult:
    review = await get_brand_review(session, brand_id, review_id)
    old_sentiment = review.sentiment

    if old_sentiment == new_sentiment:
        logger.debug("Sentiment unchanged for review %d: %s", review_id, old_sentiment.value)
        return CorrectionResult(review.id, old_sentiment, new_sentiment, None)

    change = await append_sentiment_change(
        session,
        review,
        new_sentiment,
        ChangeReason.USER_CORRECTION,
        actor_user_id=actor_user_id,
        now=now,
    )
    await session.commit()
    logger.info(
        "Sentiment updated for review %d: %s -> %s (user: %d)",
        review_id, old_sentiment.value, new_sentiment.value, actor_user_id,
    )

    recalculator = recalculator or AggregateRecalculator()
    await recalculator.on_reviews_changed(session, review.review_source_id, [utc_day(review.published_at)])

    return CorrectionResult(review.id, old_sentiment, new_sentiment, change.id)
