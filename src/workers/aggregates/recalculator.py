"""
Dashboard aggregate recalculation.

One DashboardAggregate row per (source, UTC day), always re-derived from the
non-retired reviews published that day. Recomputing is idempotent: the same
reviews always produce the same row (only ``last_calculated_at`` moves).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import utcnow
from core.models import DashboardAggregate, Review, Sentiment

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def utc_day(moment: datetime) -> date:
    return moment.astimezone(timezone.utc).date()


def average_rating(ratings: list[int]) -> Decimal | None:
    if not ratings:
        return None
    return (Decimal(sum(ratings)) / Decimal(len(ratings))).quantize(_CENTS, rounding=ROUND_HALF_UP)


class AggregateRecalculator:
    """Sole writer of DashboardAggregate rows."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock

    async def recompute(self, session: AsyncSession, source_id: int, day: date) -> DashboardAggregate:
        """Recompute and upsert the row of one (source, day). Flushes, does not commit."""
        start, end = day_bounds(day)
        result = await session.execute(
            select(Review.rating, Review.sentiment).where(
                Review.review_source_id == source_id,
                Review.deleted_at.is_(None),
                Review.published_at >= start,
                Review.published_at < end,
            )
        )
        rows = result.all()
        ratings = [rating for rating, _ in rows]
        sentiments = [sentiment for _, sentiment in rows]

        values = {
            "total_reviews": len(rows),
            "avg_rating": average_rating(ratings),
            "positive_count": sentiments.count(Sentiment.POSITIVE),
            "negative_count": sentiments.count(Sentiment.NEGATIVE),
            "neutral_count": sentiments.count(Sentiment.NEUTRAL),
            "last_calculated_at": self.clock(),
        }

        aggregate = await self._get(session, source_id, day)
        if aggregate is None:
            try:
                async with session.begin_nested():
                    aggregate = DashboardAggregate(review_source_id=source_id, day=day, **values)
                    session.add(aggregate)
            except IntegrityError:
                # Written concurrently by another recompute of the same day.
                aggregate = await self._get(session, source_id, day)
                if aggregate is None:
                    raise
                _apply(aggregate, values)
        else:
            _apply(aggregate, values)

        await session.flush()
        logger.debug(
            "Aggregate source=%d day=%s: %d reviews, avg=%s",
            source_id, day, values["total_reviews"], values["avg_rating"],
        )
        return aggregate

    async def on_reviews_changed(
        self, session: AsyncSession, source_id: int, days: Iterable[date]
    ) -> list[DashboardAggregate]:
        """Recompute every distinct day in ``days`` and commit."""
        aggregates = [await self.recompute(session, source_id, day) for day in sorted(set(days))]
        await session.commit()
        if aggregates:
            logger.info("Recomputed %d aggregate day(s) for source %d", len(aggregates), source_id)
        return aggregates

    async def rebuild_source(self, session: AsyncSession, source_id: int) -> int:
        """Recompute every day on which the source has reviews. Returns the number of days."""
        result = await session.execute(
            select(Review.published_at).where(
                Review.review_source_id == source_id,
                Review.deleted_at.is_(None),
            )
        )
        days = {utc_day(published_at) for published_at in result.scalars()}
        await self.on_reviews_changed(session, source_id, days)
        return len(days)

    @staticmethod
    async def _get(session: AsyncSession, source_id: int, day: date) -> DashboardAggregate | None:
        result = await session.execute(
            select(DashboardAggregate).where(
                DashboardAggregate.review_source_id == source_id,
                DashboardAggregate.day == day,
            )
        )
        return result.scalar_one_or_none()


def _apply(aggregate: DashboardAggregate, values: dict) -> None:
    for key, value in values.items():
        setattr(aggregate, key, value)
