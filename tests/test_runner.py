"""End-to-end job execution against a mocked Google Places API."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import T0, make_job, make_source
from core.models import (
    DashboardAggregate,
    JobStatus,
    JobType,
    Review,
    ReviewSource,
    Sentiment,
    SyncJob,
    SyncStatus,
)
from workers.sentiment.classifier import BaseSentimentClassifier, RatingHeuristicClassifier
from workers.sync.coordinator import SyncCoordinator
from workers.sync.runner import SyncJobRunner


def places_payload(*ratings: int) -> dict:
    return {
        "id": "place-x",
        "reviews": [
            {
                "name": f"places/place-x/reviews/r{i}",
                "rating": rating,
                "text": {"text": f"review number {i}", "languageCode": "en"},
                "authorAttribution": {"displayName": f"Author {i}"},
                "publishTime": "2026-03-09T10:00:00Z",
            }
            for i, rating in enumerate(ratings)
        ],
    }


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class StallingClassifier(BaseSentimentClassifier):
    """Answers from the rating, but hangs on the ``stall_on``-th call."""

    def __init__(self, stall_on: int) -> None:
        self.stall_on = stall_on
        self.calls = 0
        self.stalled = asyncio.Event()

    async def classify(self, rating: int, text: str):
        self.calls += 1
        if self.calls == self.stall_on:
            self.stalled.set()
            await asyncio.sleep(60)
        return await RatingHeuristicClassifier().classify(rating, text)


async def _setup(session_factory):
    source = await make_source(session_factory)
    job = await make_job(session_factory, source.id, JobType.INITIAL, JobStatus.PENDING)
    return source, job


async def _load(session_factory, job_id, source_id):
    async with session_factory() as session:
        job = await session.get(SyncJob, job_id)
        source = await session.get(ReviewSource, source_id)
        reviews = list((await session.execute(select(Review).order_by(Review.id))).scalars())
        aggregates = list((await session.execute(select(DashboardAggregate))).scalars())
        return job, source, reviews, aggregates


@pytest.fixture
def make_runner(session_factory, config, clock):
    def _make(client, classifier=None):
        return SyncJobRunner(
            session_factory,
            client,
            classifier or RatingHeuristicClassifier(),
            config=config,
            clock=clock,
        )

    return _make


class TestSyncJobRunner:
    async def test_successful_sync(self, session_factory, make_runner):
        source, job = await _setup(session_factory)
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=places_payload(5, 3, 1))

        async with client_for(handler) as client:
            outcome = await make_runner(client).run(job.id)

        assert outcome["status"] == "COMPLETED"
        assert seen[0].headers["X-Goog-Api-Key"] == "secret-key"
        assert "secret-key" not in str(seen[0].url)

        job, source, reviews, aggregates = await _load(session_factory, job.id, source.id)
        assert job.status == JobStatus.COMPLETED
        assert (job.reviews_fetched, job.reviews_new, job.reviews_updated) == (3, 3, 0)
        assert job.started_at == T0 and job.completed_at == T0
        assert [r.sentiment for r in reviews] == [Sentiment.POSITIVE, Sentiment.NEUTRAL, Sentiment.NEGATIVE]
        assert source.last_sync_status == SyncStatus.SUCCESS
        assert source.last_sync_at == T0
        assert source.last_sync_error is None

        assert len(aggregates) == 1
        assert aggregates[0].day == date(2026, 3, 9)
        assert aggregates[0].total_reviews == 3

    async def test_job_runs_only_once(self, session_factory, make_runner):
        source, job = await _setup(session_factory)
        handler = AsyncMock(return_value=httpx.Response(200, json=places_payload(4)))

        async with client_for(handler) as client:
            runner = make_runner(client)
            await runner.run(job.id)
            second = await runner.run(job.id)

        assert second["status"] is None
        assert handler.await_count == 1

    async def test_provider_error_fails_the_job(self, session_factory, make_runner):
        source, job = await _setup(session_factory)

        async with client_for(lambda request: httpx.Response(403, json={"error": "denied"})) as client:
            outcome = await make_runner(client).run(job.id)

        assert outcome["status"] == "FAILED"
        job, source, reviews, aggregates = await _load(session_factory, job.id, source.id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "Google error: HTTP 403"
        assert "secret-key" not in job.error_message
        assert job.completed_at == T0
        assert source.last_sync_status == SyncStatus.FAILED
        assert source.last_sync_error == job.error_message
        assert reviews == [] and aggregates == []

    async def test_timeout_fails_the_job(self, session_factory, make_runner, config):
        config.sync_job_timeout_seconds = 0.05
        source, job = await _setup(session_factory)

        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json=places_payload(5))

        async with client_for(slow) as client:
            await make_runner(client).run(job.id)

        job, *_ = await _load(session_factory, job.id, source.id)
        assert job.status == JobStatus.FAILED
        assert "timed out" in job.error_message

    async def test_storage_error_keeps_partial_progress(self, session_factory, make_runner):
        source, job = await _setup(session_factory)
        classifier = AsyncMock()
        classifier.classify.side_effect = [
            await RatingHeuristicClassifier().classify(5, ""),
            OperationalError("INSERT INTO review", {}, Exception("disk I/O error")),
        ]

        async with client_for(lambda request: httpx.Response(200, json=places_payload(5, 2))) as client:
            await make_runner(client, classifier).run(job.id)

        job, source, reviews, aggregates = await _load(session_factory, job.id, source.id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "Storage error: OperationalError"
        assert (job.reviews_fetched, job.reviews_new) == (1, 1)
        assert len(reviews) == 1
        assert aggregates[0].total_reviews == 1

    async def test_retired_source_fails_without_fetching(self, session_factory, make_runner):
        source = await make_source(session_factory, deleted_at=T0, is_active=False)
        job = await make_job(session_factory, source.id, JobType.MANUAL, JobStatus.PENDING)
        handler = AsyncMock()

        async with client_for(handler) as client:
            await make_runner(client).run(job.id)

        job, *_ = await _load(session_factory, job.id, source.id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "Review source is retired"
        handler.assert_not_awaited()

    async def test_null_reviews_payload_completes_empty(self, session_factory, make_runner):
        source, job = await _setup(session_factory)

        async with client_for(lambda request: httpx.Response(200, json={"id": "p", "reviews": None})) as client:
            outcome = await make_runner(client).run(job.id)

        assert outcome["status"] == "COMPLETED"
        job, source, reviews, _ = await _load(session_factory, job.id, source.id)
        assert job.status == JobStatus.COMPLETED
        assert reviews == []

    async def test_non_object_review_fails_the_job(self, session_factory, make_runner):
        source, job = await _setup(session_factory)

        async with client_for(lambda request: httpx.Response(200, json={"reviews": ["oops"]})) as client:
            outcome = await make_runner(client).run(job.id)

        assert outcome["status"] == "FAILED"
        job, *_ = await _load(session_factory, job.id, source.id)
        assert job.error_message == "Google error: malformed review record"

    async def test_unexpected_error_fails_the_job_and_frees_the_source(
        self, session_factory, make_runner, config, clock
    ):
        source, job = await _setup(session_factory)
        classifier = AsyncMock()
        classifier.classify.side_effect = RuntimeError("boom")

        async with client_for(lambda request: httpx.Response(200, json=places_payload(5))) as client:
            outcome = await make_runner(client, classifier).run(job.id)

        assert outcome["status"] == "FAILED"
        job, source, *_ = await _load(session_factory, job.id, source.id)
        assert job.error_message == "Unexpected error: RuntimeError"
        assert source.last_sync_status == SyncStatus.FAILED

        coordinator = SyncCoordinator(session_factory, enqueue=AsyncMock(), config=config, clock=clock)
        assert await coordinator.create_initial_job(source.id)

    async def test_cancelled_run_marks_the_job_failed(self, session_factory, make_runner, config, clock):
        source, job = await _setup(session_factory)
        classifier = StallingClassifier(stall_on=2)

        async with client_for(lambda request: httpx.Response(200, json=places_payload(5, 2))) as client:
            task = asyncio.create_task(make_runner(client, classifier).run(job.id))
            await asyncio.wait_for(classifier.stalled.wait(), timeout=5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        job, source, reviews, aggregates = await _load(session_factory, job.id, source.id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "Sync job was cancelled before completion"
        assert job.completed_at == T0
        assert (job.reviews_fetched, job.reviews_new) == (1, 1)
        assert source.last_sync_status == SyncStatus.FAILED
        assert len(reviews) == 1
        assert aggregates[0].total_reviews == 1

        coordinator = SyncCoordinator(session_factory, enqueue=AsyncMock(), config=config, clock=clock)
        assert await coordinator.admit(source.id, JobType.SCHEDULED, enforce_rate_limit=False)
