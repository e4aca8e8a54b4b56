"""
FastAPI application entry point.

Thin surface over the sync engine: manual triggers, job projections and
sentiment corrections. Sync work itself runs on the ARQ worker.
"""

from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes.reviews import router as reviews_router
from api.routes.sync import router as sync_router
from core.config import settings
from core.exceptions import NotFound, RateLimitExceeded, SyncInProgress, ValidationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: startup/shutdown events."""
    logging.basicConfig(level=settings.log_level)
    app.state.arq = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    yield
    await app.state.arq.close()


app = FastAPI(
    title="Review Sync Engine",
    description="Review synchronization, sentiment audit and dashboard aggregates",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Routes ────────────────────────────────────────────────────────────
app.include_router(sync_router)
app.include_router(reviews_router)


# ── Error mapping ─────────────────────────────────────────────────────

@app.exception_handler(RateLimitExceeded)
async def rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = max(1, math.ceil(exc.retry_after.total_seconds()))
    return JSONResponse(
        status_code=429,
        content={
            "detail": str(exc),
            "source_id": exc.source_id,
            "next_available_at": exc.next_available_at.isoformat(),
        },
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(SyncInProgress)
async def sync_in_progress(request: Request, exc: SyncInProgress) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "source_id": exc.source_id})


@app.exception_handler(NotFound)
async def not_found(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def invalid(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "review-sync-engine"}
