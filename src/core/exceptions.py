"""
Domain errors of the review sync engine.

Admission errors are raised synchronously to whoever triggers a sync.
Provider and classification errors never reach the trigger caller: the
runner turns them into a FAILED job (provider) or a heuristic fallback
(classification). Messages of ``ProviderError`` are stored verbatim on the
job, so they must never contain credentials or raw provider payloads.
"""

from __future__ import annotations

from datetime import datetime, timedelta


class ReviewSyncError(Exception):
    """Base class for all engine errors."""


class NotFound(ReviewSyncError):
    def __init__(self, resource: str, resource_id: object) -> None:
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(ReviewSyncError):
    pass


# ── Admission ─────────────────────────────────────────────────────────

class AdmissionError(ReviewSyncError):
    """A sync job was refused before being created."""

    def __init__(self, source_id: int, message: str) -> None:
        super().__init__(message)
        self.source_id = source_id


class RateLimitExceeded(AdmissionError):
    def __init__(
        self,
        source_id: int,
        retry_after: timedelta,
        next_available_at: datetime,
        cooldown_hours: int = 24,
    ) -> None:
        hours = int(retry_after.total_seconds() // 3600)
        super().__init__(
            source_id,
            f"Manual refresh allowed once per {cooldown_hours} hours. Try again in {hours} hours.",
        )
        self.retry_after = retry_after
        self.next_available_at = next_available_at


class SyncInProgress(AdmissionError):
    def __init__(self, source_id: int) -> None:
        super().__init__(source_id, f"A sync is already running for source {source_id}")


# ── Job execution ─────────────────────────────────────────────────────

class InvalidJobTransition(ReviewSyncError):
    def __init__(self, job_id: int | None, current: object, target: object) -> None:
        super().__init__(f"SyncJob {job_id}: cannot go from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class ProviderError(ReviewSyncError):
    """Fetching reviews from a platform failed (network, auth, bad payload)."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider} error: {message}")
        self.provider = provider


class ClassificationError(ReviewSyncError):
    """The sentiment classifier could not produce a usable label."""
