"""Per-day dashboard aggregates."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from conftest import T0
from core.models import DashboardAggregate, Review, ReviewSource, Sentiment, SourceType
from workers.aggregates.recalculator import AggregateRecalculator, average_rating, utc_day

DAY = date(2026, 3, 9)


@pytest_asyncio.fixture
async def source(session):
    source = ReviewSource(
        brand_id=1,
        source_type=SourceType.TRUSTPILOT,
        profile_url="https://www.trustpilot.com/review/example.com",
        external_profile_id="unit-1",
    )
    session.add(source)
    await session.commit()
    return source


def _review(source, external_id, rating, sentiment, published_at, **extra) -> Review:
    return Review(
        review_source_id=source.id,
        external_review_id=external_id,
        content="",
        content_hash="0" * 64,
        rating=rating,
        sentiment=sentiment,
        published_at=published_at,
        **extra,
    )


@pytest.fixture
def recalculator(clock):
    return AggregateRecalculator(clock)


class TestAverageRating:
    def test_empty_day_has_no_average(self):
        assert average_rating([]) is None

    def test_two_decimals(self):
        assert average_rating([5, 4, 2]) == Decimal("3.67")

    def test_rounds_half_up(self):
        # 17 / 8 == 2.125
        assert average_rating([3, 2, 2, 2, 2, 2, 2, 2]) == Decimal("2.13")


def test_utc_day_uses_utc_calendar():
    late_evening_in_warsaw = datetime(2026, 3, 9, 23, 30, tzinfo=timezone(timedelta(hours=1)))
    assert utc_day(late_evening_in_warsaw) == date(2026, 3, 9)


class TestAggregateRecalculator:
    async def test_recompute_counts_one_day(self, session, source, recalculator):
        noon = datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc)
        session.add_all([
            _review(source, "a", 5, Sentiment.POSITIVE, noon),
            _review(source, "b", 4, Sentiment.POSITIVE, noon.replace(hour=0)),
            _review(source, "c", 2, Sentiment.NEGATIVE, noon.replace(hour=23, minute=59)),
            _review(source, "d", 1, Sentiment.NEGATIVE, noon + timedelta(days=1)),   # next day
            _review(source, "e", 1, Sentiment.NEGATIVE, noon, deleted_at=T0),         # retired
        ])
        await session.commit()

        aggregate = await recalculator.recompute(session, source.id, DAY)
        await session.commit()

        assert aggregate.total_reviews == 3
        assert aggregate.avg_rating == Decimal("3.67")
        assert (aggregate.positive_count, aggregate.neutral_count, aggregate.negative_count) == (2, 0, 1)
        assert aggregate.last_calculated_at == T0

    async def test_recompute_is_idempotent(self, session, source, recalculator, clock):
        session.add(_review(source, "a", 3, Sentiment.NEUTRAL, datetime(2026, 3, 9, 8, tzinfo=timezone.utc)))
        await session.commit()

        first = await recalculator.recompute(session, source.id, DAY)
        snapshot = (first.total_reviews, first.avg_rating, first.positive_count, first.neutral_count, first.negative_count)
        clock.advance(minutes=5)
        second = await recalculator.recompute(session, source.id, DAY)
        await session.commit()

        assert second.id == first.id
        assert (second.total_reviews, second.avg_rating, second.positive_count, second.neutral_count, second.negative_count) == snapshot
        assert second.last_calculated_at == T0 + timedelta(minutes=5)
        count = (await session.execute(select(func.count(DashboardAggregate.id)))).scalar_one()
        assert count == 1

    async def test_empty_day_still_gets_a_row(self, session, source, recalculator):
        aggregate = await recalculator.recompute(session, source.id, DAY)
        await session.commit()

        assert aggregate.total_reviews == 0
        assert aggregate.avg_rating is None

    async def test_on_reviews_changed_dedupes_days(self, session, source, recalculator):
        rows = await recalculator.on_reviews_changed(session, source.id, [DAY, DAY, DAY + timedelta(days=1)])
        assert [row.day for row in rows] == [DAY, DAY + timedelta(days=1)]

    async def test_rebuild_source_covers_every_review_day(self, session, source, recalculator):
        for offset in range(3):
            published = datetime(2026, 3, 1 + offset, 10, tzinfo=timezone.utc)
            session.add(_review(source, f"r{offset}", 4, Sentiment.POSITIVE, published))
        await session.commit()

        days = await recalculator.rebuild_source(session, source.id)

        assert days == 3
        result = await session.execute(
            select(DashboardAggregate.day).where(DashboardAggregate.review_source_id == source.id)
        )
        assert sorted(result.scalars()) == [date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 3)]
