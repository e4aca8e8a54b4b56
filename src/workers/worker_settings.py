"""
ARQ Worker Settings: Registers all background jobs.

Usage:
    arq workers.worker_settings.WorkerSettings
"""

from __future__ import annotations

import logging
from datetime import date
from zoneinfo import ZoneInfo

import httpx
from arq import cron
from arq.connections import RedisSettings

from core.config import settings

logger = logging.getLogger(__name__)


def _coordinator(ctx: dict):
    from core.database import async_session_factory
    from workers.sync.coordinator import SyncCoordinator, arq_enqueuer

    return SyncCoordinator(async_session_factory, enqueue=arq_enqueuer(ctx["redis"]))


async def run_sync_job(ctx: dict, job_id: int) -> dict:
    """ARQ job: execute one admitted SyncJob."""
    from core.database import async_session_factory
    from workers.sync.runner import SyncJobRunner

    runner = SyncJobRunner(async_session_factory, ctx["http_client"], ctx["classifier"])
    return await runner.run(job_id)


async def recompute_aggregates(ctx: dict, source_id: int, days: list[str] | None = None) -> int:
    """ARQ job: recompute dashboard aggregates (given ISO days, or the whole source)."""
    from core.database import async_session_factory
    from workers.aggregates.recalculator import AggregateRecalculator

    recalculator = AggregateRecalculator()
    async with async_session_factory() as session:
        if days is None:
            return await recalculator.rebuild_source(session, source_id)
        rows = await recalculator.on_reviews_changed(
            session, source_id, [date.fromisoformat(day) for day in days]
        )
        return len(rows)


async def run_scheduled_sync(ctx: dict) -> dict:
    """ARQ cron: create SCHEDULED jobs for every due source."""
    from core.database import async_session_factory
    from workers.sync.scheduler import ScheduledSyncTrigger

    result = await ScheduledSyncTrigger(_coordinator(ctx), async_session_factory).run()
    return {
        "created": result.job_ids,
        "skipped": result.skipped_source_ids,
        "failed": result.failed_source_ids,
    }


async def dispatch_pending_jobs(ctx: dict) -> int:
    """ARQ cron: re-enqueue PENDING jobs (deterministic ARQ ids make this idempotent)."""
    coordinator = _coordinator(ctx)
    pending = await coordinator.find_pending_jobs()
    await coordinator.dispatch([job.id for job in pending])
    if pending:
        logger.info("Re-dispatched %d pending job(s)", len(pending))
    return len(pending)


async def report_stuck_jobs(ctx: dict) -> int:
    """ARQ cron: surface jobs stuck IN_PROGRESS past the threshold."""
    stuck = await _coordinator(ctx).find_stuck_jobs()
    for job in stuck:
        logger.warning(
            "⚠️  Job #%d (source %d) IN_PROGRESS since %s",
            job.id, job.review_source_id, job.started_at.isoformat(),
        )
    return len(stuck)


async def startup(ctx: dict) -> None:
    """Called on worker startup."""
    from workers.sentiment.classifier import build_classifier

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx["http_client"] = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    ctx["classifier"] = build_classifier(settings)


async def shutdown(ctx: dict) -> None:
    """Called on worker shutdown."""
    client = ctx.get("http_client")
    if client is not None:
        await client.aclose()


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [
        run_sync_job,
        recompute_aggregates,
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = settings.worker_max_jobs
    job_timeout = int(settings.sync_job_timeout_seconds) + 60
    timezone = ZoneInfo(settings.sync_timezone)

    # Cron schedule
    cron_jobs = [
        # Scheduled sync: hourly tick, sources carry their own daily slot
        cron(run_scheduled_sync, minute={0}),
        # Re-dispatch sweep for jobs whose enqueue was lost
        cron(dispatch_pending_jobs, minute={15, 45}),
        # Stuck job report
        cron(report_stuck_jobs, minute={30}),
    ]
