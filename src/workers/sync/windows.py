"""Fetch window policy per job kind."""

from __future__ import annotations

from datetime import datetime, timedelta

from core.config import Settings
from core.models import JobType
from workers.sync.models import FetchWindow


def resolve_fetch_window(
    job_type: JobType,
    now: datetime,
    last_successful_sync_at: datetime | None,
    config: Settings,
) -> FetchWindow:
    """
    INITIAL jobs always import the last ``initial_import_days``.

    SCHEDULED / MANUAL jobs follow ``sync_window_policy``:
      - ``since_last_sync``: from the last successful sync minus an overlap,
        falling back to the initial window when the source never synced.
      - ``trailing``: a fixed trailing window of ``sync_trailing_window_days``.
    """
    initial = FetchWindow(start=now - timedelta(days=config.initial_import_days), end=now)
    if job_type == JobType.INITIAL:
        return initial

    if config.sync_window_policy == "trailing":
        return FetchWindow(start=now - timedelta(days=config.sync_trailing_window_days), end=now)

    if last_successful_sync_at is None:
        return initial
    start = last_successful_sync_at - timedelta(days=config.sync_overlap_days)
    return FetchWindow(start=max(start, initial.start), end=now)
