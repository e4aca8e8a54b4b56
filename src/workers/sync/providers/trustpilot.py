"""
Trustpilot adapter: public business unit reviews API.

GET https://api.trustpilot.com/v1/business-units/{id}/reviews ordered by
newest first; paging stops at the first review older than the window.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from core.config import settings
from core.exceptions import ProviderError
from workers.sync.models import FetchWindow, ProviderProfile, RawReview
from workers.sync.providers.base import BaseProviderAdapter

logger = logging.getLogger(__name__)

REVIEWS_URL = "https://api.trustpilot.com/v1/business-units/{unit_id}/reviews"
PER_PAGE = 100
MAX_PAGES = 20


class TrustpilotReviewsAdapter(BaseProviderAdapter):
    """Fetches reviews of a Trustpilot business unit."""

    provider_name = "Trustpilot"

    async def fetch_reviews(
        self,
        profile: ProviderProfile,
        credentials: Mapping[str, Any],
        window: FetchWindow,
    ) -> list[RawReview]:
        api_key = self._require(credentials, "api_key", settings.trustpilot_api_key, self.provider_name)
        url = REVIEWS_URL.format(unit_id=profile.external_profile_id)

        reviews: list[RawReview] = []
        for page in range(1, MAX_PAGES + 1):
            payload = await self._get_json(
                url,
                params={"page": page, "perPage": PER_PAGE, "orderBy": "createdat.desc"},
                headers={"apikey": api_key},
            )
            batch = [self._parse(item) for item in self._items(payload, "reviews")]
            reviews.extend(batch)
            if len(batch) < PER_PAGE or batch[-1].published_at < window.start:
                break

        logger.info("Trustpilot: %d reviews fetched for unit %s", len(reviews), profile.external_profile_id)
        return self._in_window(reviews, window)

    def _parse(self, item: dict[str, Any]) -> RawReview:
        try:
            title = item.get("title") or ""
            body = item.get("text") or ""
            return RawReview(
                external_id=item["id"],
                text=f"{title}\n{body}".strip() if title else body,
                author=(item.get("consumer") or {}).get("displayName"),
                rating=int(item["stars"]),
                published_at=datetime.fromisoformat(item["createdAt"].replace("Z", "+00:00")),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ProviderError(self.provider_name, "malformed review record") from exc
