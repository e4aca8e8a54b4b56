"""
ScheduledSyncTrigger: daily SCHEDULED jobs.

Runs on an hourly cron tick. Every active, non-retired source whose
``next_scheduled_sync_at`` has passed gets a SCHEDULED job through the same
admission primitive as manual triggers (minus the rate limit), and its next
slot moves to the following daily sync hour in the configured time zone.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, settings
from core.database import utcnow
from core.exceptions import NotFound, SyncInProgress
from core.models import JobType, ReviewSource
from workers.sync.models import ScheduledTickResult

if TYPE_CHECKING:
    from workers.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


def next_daily_sync_time(now: datetime, hour: int, tz_name: str) -> datetime:
    """Next ``hour``:00 in ``tz_name`` strictly after ``now``, returned in UTC."""
    zone = ZoneInfo(tz_name)
    local = now.astimezone(zone)
    candidate = datetime.combine(local.date(), time(hour), tzinfo=zone)
    if candidate <= local:
        candidate = datetime.combine(local.date() + timedelta(days=1), time(hour), tzinfo=zone)
    return candidate.astimezone(timezone.utc)


class ScheduledSyncTrigger:
    def __init__(
        self,
        coordinator: SyncCoordinator,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.coordinator = coordinator
        self.session_factory = session_factory
        self.config = config
        self.clock = clock

    async def due_source_ids(self, now: datetime) -> list[int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ReviewSource.id)
                .where(
                    ReviewSource.is_active.is_(True),
                    ReviewSource.deleted_at.is_(None),
                    ReviewSource.next_scheduled_sync_at.is_not(None),
                    ReviewSource.next_scheduled_sync_at <= now,
                )
                .order_by(ReviewSource.next_scheduled_sync_at, ReviewSource.id)
            )
            return list(result.scalars())

    async def run(self) -> ScheduledTickResult:
        now = self.clock()
        next_slot = next_daily_sync_time(now, self.config.daily_sync_hour, self.config.sync_timezone)
        due = await self.due_source_ids(now)
        logger.info("Scheduled tick: %d source(s) due", len(due))

        result = ScheduledTickResult()
        for source_id in due:
            try:
                job_id = await self.coordinator.admit(
                    source_id,
                    JobType.SCHEDULED,
                    enforce_rate_limit=False,
                    reschedule_at=next_slot,
                )
            except SyncInProgress:
                logger.info("Source %d: sync already active, scheduled run skipped", source_id)
                result.skipped_source_ids.append(source_id)
            except (NotFound, SQLAlchemyError):
                logger.exception("Source %d: scheduled admission failed", source_id)
                result.failed_source_ids.append(source_id)
            else:
                result.job_ids.append(job_id)

        await self.coordinator.dispatch(result.job_ids)
        logger.info(
            "Scheduled tick done: %d created, %d skipped, %d failed",
            len(result.job_ids), len(result.skipped_source_ids), len(result.failed_source_ids),
        )
        return result
