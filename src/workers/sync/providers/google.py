"""
Google adapter: reference implementation over the Places API (New).

GET https://places.googleapis.com/v1/places/{place_id}
with ``X-Goog-FieldMask: reviews``. The API returns the most relevant
reviews only, so the window is applied client-side.
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

PLACES_URL = "https://places.googleapis.com/v1/places/{place_id}"


class GoogleReviewsAdapter(BaseProviderAdapter):
    """Fetches reviews of a Google Business place."""

    provider_name = "Google"

    async def fetch_reviews(
        self,
        profile: ProviderProfile,
        credentials: Mapping[str, Any],
        window: FetchWindow,
    ) -> list[RawReview]:
        api_key = self._require(credentials, "api_key", settings.google_places_api_key, self.provider_name)
        payload = await self._get_json(
            PLACES_URL.format(place_id=profile.external_profile_id),
            headers={
                "X-Goog-Api-Key": api_key,
                "X-Goog-FieldMask": "id,reviews",
            },
        )

        reviews = [self._parse(item) for item in self._items(payload, "reviews")]
        logger.info("Google: %d reviews returned for place %s", len(reviews), profile.external_profile_id)
        return self._in_window(reviews, window)

    def _parse(self, item: dict[str, Any]) -> RawReview:
        try:
            text = (item.get("originalText") or item.get("text") or {}).get("text", "")
            return RawReview(
                external_id=item["name"],  # places/{place_id}/reviews/{review_id}
                text=text,
                author=(item.get("authorAttribution") or {}).get("displayName"),
                rating=int(item["rating"]),
                published_at=datetime.fromisoformat(item["publishTime"].replace("Z", "+00:00")),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ProviderError(self.provider_name, "malformed review record") from exc
