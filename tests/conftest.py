"""
Shared fixtures: in-memory SQLite (aiosqlite) engine, session factory,
a controllable clock and small builders for sources and jobs.

Tests open short-lived sessions and close them before calling services:
StaticPool shares one connection between all sessions of a test.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import itertools
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.config import Settings
from core.database import Base
from core.models import JobStatus, JobType, ReviewSource, SourceType, SyncJob
from workers.sync.models import RawReview


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

_profile_ids = itertools.count(1)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def config() -> Settings:
    return Settings(database_url="sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transactions break SAVEPOINT; let SQLAlchemy emit BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ── Builders ──────────────────────────────────────────────────────────

async def make_source(session_factory, brand_id: int = 1, **overrides) -> ReviewSource:
    values = {
        "brand_id": brand_id,
        "source_type": SourceType.GOOGLE,
        "profile_url": "https://maps.google.com/?cid=1",
        "external_profile_id": f"place-{next(_profile_ids)}",
        "credentials": {"api_key": "secret-key"},
    }
    values.update(overrides)
    async with session_factory() as session:
        source = ReviewSource(**values)
        session.add(source)
        await session.commit()
        return source


async def make_job(
    session_factory,
    source_id: int,
    job_type: JobType = JobType.MANUAL,
    status: JobStatus = JobStatus.COMPLETED,
    created_at: datetime = T0,
    **extra,
) -> SyncJob:
    async with session_factory() as session:
        job = SyncJob(
            review_source_id=source_id,
            job_type=job_type,
            status=status,
            created_at=created_at,
            **extra,
        )
        session.add(job)
        await session.commit()
        return job


async def finish_job(session_factory, job_id: int, when: datetime = T0) -> None:
    async with session_factory() as session:
        job = await session.get(SyncJob, job_id)
        job.mark_started(now=when)
        job.mark_completed(now=when)
        await session.commit()


def raw(external_id: str, rating: int, text: str = "", published_at: datetime = T0 - timedelta(days=1)) -> RawReview:
    return RawReview(
        external_id=external_id,
        text=text or f"review {external_id}",
        author="Jan Kowalski",
        rating=rating,
        published_at=published_at,
    )
