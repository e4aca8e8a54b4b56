"""
Append-only sentiment audit trail.

``append_sentiment_change`` is the only way a review's sentiment moves.
Timestamps are strictly increasing per review, so "current sentiment" is
always the newest row, even when a user correction races a reanalysis.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import utcnow
from core.models import ChangeReason, Review, Sentiment, SentimentChange

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)


async def latest_change(session: AsyncSession, review_id: int) -> SentimentChange | None:
    result = await session.execute(
        select(SentimentChange)
        .where(SentimentChange.review_id == review_id)
        .order_by(SentimentChange.changed_at.desc(), SentimentChange.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def append_sentiment_change(
    session: AsyncSession,
    review: Review,
    new_sentiment: Sentiment,
    reason: ChangeReason,
    *,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> SentimentChange:
    """
    Append one SentimentChange for ``review`` and re-derive ``review.sentiment``.

    ``old_sentiment`` is taken from the newest existing row (NULL for the
    first one). The caller owns the transaction.
    """
    if review.id is None:
        await session.flush()

    previous = await latest_change(session, review.id)
    changed_at = now or utcnow()
    if previous is not None and changed_at <= previous.changed_at:
        changed_at = previous.changed_at + _TICK

    change = SentimentChange(
        review_id=review.id,
        old_sentiment=previous.new_sentiment if previous is not None else None,
        new_sentiment=new_sentiment,
        changed_by_user_id=actor_user_id,
        change_reason=reason,
        changed_at=changed_at,
    )
    session.add(change)
    await session.flush()

    current = await latest_change(session, review.id)
    review.sentiment = current.new_sentiment if current is not None else new_sentiment

    logger.debug(
        "Review %d sentiment %s -> %s (%s)",
        review.id, change.old_sentiment, new_sentiment, reason.value,
    )
    return change
