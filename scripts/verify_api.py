"""Verification script: exercise the sync API endpoints in-process using httpx."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpx import ASGITransport, AsyncClient
from api.main import app


async def main(brand_id: int = 1, source_id: int = 1) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        # 1. Health
        print("🔍 Testing /health...")
        resp = await client.get("/health")
        print(f"   Status: {resp.status_code}")
        print(f"   Body: {resp.json()}")

        # 2. Manual refresh (run twice: the second call must be refused)
        for attempt in (1, 2):
            print(f"\n🔍 POST /api/brands/{brand_id}/sync (attempt {attempt})...")
            resp = await client.post(f"/api/brands/{brand_id}/sync", json={"source_id": source_id})
            print(f"   Status: {resp.status_code}  Retry-After: {resp.headers.get('Retry-After')}")
            print(f"   Body: {resp.json()}")

        # 3. Job history
        print(f"\n🔍 GET /api/review-sources/{source_id}/sync-jobs...")
        resp = await client.get(f"/api/review-sources/{source_id}/sync-jobs", params={"size": 5})
        print(f"   Status: {resp.status_code}")
        data = resp.json()
        print(f"   Total jobs: {data.get('total_items')}")
        for job in data.get("jobs", []):
            print(f"   - #{job['job_id']} {job['job_type']} {job['status']}")


if __name__ == "__main__":
    asyncio.run(main())
