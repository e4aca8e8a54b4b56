"""Sync API: manual refresh triggers and job history."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from core.database import async_session_factory
from core.models import JobStatus, JobType
from workers.sync.coordinator import (
    DEFAULT_PAGE_SIZE,
    SyncCoordinator,
    arq_enqueuer,
)
from workers.sync.models import JobStatusView

router = APIRouter(prefix="/api", tags=["sync"])


def get_coordinator(request: Request) -> SyncCoordinator:
    redis = getattr(request.app.state, "arq", None)
    return SyncCoordinator(
        async_session_factory,
        enqueue=arq_enqueuer(redis) if redis is not None else None,
    )


# ── Schemas ───────────────────────────────────────────────────────────

class TriggerSyncRequest(BaseModel):
    source_id: int | None = None


class SkippedSourceOut(BaseModel):
    source_id: int
    reason: str
    retry_after_seconds: int | None = None


class TriggerSyncResponse(BaseModel):
    job_ids: list[int]
    next_eligible_at: datetime
    skipped: list[SkippedSourceOut]
    message: str


class JobStatusResponse(BaseModel):
    job_id: int
    source_id: int
    job_type: JobType
    status: JobStatus
    reviews_fetched: int
    reviews_new: int
    reviews_updated: int
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    duration_seconds: float | None
    error_message: str | None

    @classmethod
    def from_view(cls, view: JobStatusView) -> "JobStatusResponse":
        return cls(
            job_id=view.job_id,
            source_id=view.source_id,
            job_type=view.job_type,
            status=view.status,
            reviews_fetched=view.reviews_fetched,
            reviews_new=view.reviews_new,
            reviews_updated=view.reviews_updated,
            created_at=view.created_at,
            started_at=view.started_at,
            completed_at=view.completed_at,
            duration_seconds=view.duration.total_seconds() if view.duration is not None else None,
            error_message=view.error_message,
        )


class JobHistoryResponse(BaseModel):
    jobs: list[JobStatusResponse]
    page: int
    size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("/brands/{brand_id}/sync", status_code=202, response_model=TriggerSyncResponse)
async def trigger_sync(
    brand_id: int,
    body: TriggerSyncRequest | None = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Start a manual refresh of one source, or of every active source of the brand."""
    result = await coordinator.trigger_manual_sync(brand_id, body.source_id if body else None)
    return TriggerSyncResponse(
        job_ids=result.job_ids,
        next_eligible_at=result.next_eligible_at,
        skipped=[
            SkippedSourceOut(
                source_id=s.source_id,
                reason=s.reason,
                retry_after_seconds=int(s.retry_after.total_seconds()) if s.retry_after else None,
            )
            for s in result.skipped
        ],
        message=f"Sync started for {len(result.job_ids)} source(s)",
    )


@router.get("/sync-jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: int, coordinator: SyncCoordinator = Depends(get_coordinator)):
    return JobStatusResponse.from_view(await coordinator.get_job_status(job_id))


@router.get("/review-sources/{source_id}/sync-jobs", response_model=JobHistoryResponse)
async def list_source_jobs(
    source_id: int,
    page: int = Query(default=0),
    size: int = Query(default=DEFAULT_PAGE_SIZE),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    history = await coordinator.list_jobs(source_id, page=page, size=size)
    return JobHistoryResponse(
        jobs=[JobStatusResponse.from_view(view) for view in history.jobs],
        page=history.page,
        size=history.size,
        total_items=history.total_items,
        total_pages=history.total_pages,
        has_next=history.has_next,
        has_previous=history.has_previous,
    )
