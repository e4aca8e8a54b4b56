"""
Configuration management with pydantic-settings.

Every environment variable is validated at startup. A missing required
variable makes the process fail immediately with a clear message (fail-fast).
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────────────
    database_url: str = Field(
        description="Async connection string (postgresql+asyncpg://...)",
    )
    database_url_sync: str = Field(
        default="",
        description="Sync connection string for Alembic (postgresql://...)",
    )

    # ── Redis / ARQ ───────────────────────────────────────────────────
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string for ARQ workers.",
    )
    worker_max_jobs: int = Field(
        default=10,
        description="Number of sync jobs a single worker runs concurrently.",
    )

    log_level: str = Field(default="INFO")

    # ── Sync admission ────────────────────────────────────────────────
    manual_refresh_cooldown_hours: int = Field(
        default=24,
        description="Rolling window between two MANUAL jobs of one source.",
    )
    stuck_job_threshold_minutes: int = Field(default=60)

    # ── Fetch windows ─────────────────────────────────────────────────
    initial_import_days: int = Field(default=90)
    sync_window_policy: Literal["since_last_sync", "trailing"] = Field(
        default="since_last_sync",
        description="Fetch window for SCHEDULED / MANUAL jobs.",
    )
    sync_trailing_window_days: int = Field(default=7)
    sync_overlap_days: int = Field(
        default=1,
        description="Days re-fetched before the last successful sync.",
    )

    # ── Scheduling ────────────────────────────────────────────────────
    daily_sync_hour: int = Field(default=3, ge=0, le=23)
    sync_timezone: str = Field(default="Europe/Warsaw")

    # ── Timeouts ──────────────────────────────────────────────────────
    provider_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout for a single provider request.",
    )
    sync_job_timeout_seconds: float = Field(
        default=300.0,
        description="Hard limit for the whole provider fetch of one job.",
    )

    # ── Sentiment / LLM ───────────────────────────────────────────────
    sentiment_classifier: Literal["heuristic", "llm"] = Field(default="heuristic")
    llm_model: str = Field(
        default="anthropic/claude-3-haiku",
        description="LLM model identifier.",
    )
    llm_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenAI-compatible endpoint (OpenRouter by default).",
    )
    openai_api_key: str = Field(
        default="",
        description="Key for the OpenAI-compatible endpoint.",
    )
    gemini_api_key: str = Field(
        default="",
        description="Gemini Specific API Key.",
    )

    # ── Review providers ──────────────────────────────────────────────
    google_places_api_key: str = Field(default="")
    facebook_graph_version: str = Field(default="v19.0")
    trustpilot_api_key: str = Field(default="")


# Singleton instance, import this everywhere
settings = Settings()  # type: ignore[call-arg]
