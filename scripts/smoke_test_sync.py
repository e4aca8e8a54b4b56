"""Smoke test: register a Google review source and run its INITIAL sync inline (no worker)."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import httpx
from sqlalchemy import select

from core.config import settings
from core.database import async_session_factory
from core.models import ReviewSource, SourceType
from workers.sentiment.classifier import build_classifier
from workers.sync.coordinator import SyncCoordinator
from workers.sync.runner import SyncJobRunner


async def main(brand_id: int, place_id: str) -> None:
    logging.basicConfig(level=settings.log_level)
    print("🚀 Starting Smoke Test: Review Sync Pipeline")

    async with async_session_factory() as session:
        # 1. Ensure the source exists
        result = await session.execute(
            select(ReviewSource).where(
                ReviewSource.brand_id == brand_id,
                ReviewSource.source_type == SourceType.GOOGLE,
                ReviewSource.external_profile_id == place_id,
                ReviewSource.deleted_at.is_(None),
            )
        )
        source = result.scalar_one_or_none()
        if not source:
            print("  ➕ Creating Google review source...")
            source = ReviewSource(
                brand_id=brand_id,
                source_type=SourceType.GOOGLE,
                profile_url=f"https://www.google.com/maps/place/?q=place_id:{place_id}",
                external_profile_id=place_id,
            )
            session.add(source)
            await session.commit()
        print(f"  ✅ Source ready (ID: {source.id})")

    # 2. Admit the INITIAL job (no queue: run it right here)
    coordinator = SyncCoordinator(async_session_factory)
    job_id = await coordinator.create_initial_job(source.id)
    print(f"  📥 INITIAL job #{job_id} admitted")

    # 3. Run it
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        runner = SyncJobRunner(async_session_factory, client, build_classifier(settings))
        outcome = await runner.run(job_id)

    print(f"\n🏁 Finished: {outcome}")
    status = await coordinator.get_job_status(job_id)
    if status.error_message:
        print(f"  ❌ {status.error_message}")
    print("\nNext: check the review, sentiment_change and dashboard_aggregate tables.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--brand-id", type=int, default=1)
    parser.add_argument("--place-id", required=True, help="Google Places place id")
    args = parser.parse_args()
    asyncio.run(main(args.brand_id, args.place_id))
