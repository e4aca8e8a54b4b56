"""
Facebook adapter: Graph API page ratings edge.

GET https://graph.facebook.com/{version}/{page_id}/ratings, paged through
``paging.next``. Recommendations carry no stars: positive maps to 5,
negative to 1, unless the legacy ``rating`` field is present.
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

GRAPH_URL = "https://graph.facebook.com/{version}/{page_id}/ratings"
MAX_PAGES = 20

_RECOMMENDATION_RATING = {"positive": 5, "negative": 1}


class FacebookReviewsAdapter(BaseProviderAdapter):
    """Fetches recommendations of a Facebook page."""

    provider_name = "Facebook"

    async def fetch_reviews(
        self,
        profile: ProviderProfile,
        credentials: Mapping[str, Any],
        window: FetchWindow,
    ) -> list[RawReview]:
        token = self._require(credentials, "page_access_token", "", self.provider_name)
        headers = {"Authorization": f"Bearer {token}"}

        url: str | None = GRAPH_URL.format(
            version=settings.facebook_graph_version, page_id=profile.external_profile_id
        )
        params: dict[str, Any] | None = {
            "fields": "created_time,rating,recommendation_type,review_text,reviewer{name},open_graph_story{id}",
            "since": int(window.start.timestamp()),
            "until": int(window.end.timestamp()),
            "limit": 100,
        }

        reviews: list[RawReview] = []
        pages = 0
        while url and pages < MAX_PAGES:
            payload = await self._get_json(url, params=params, headers=headers)
            reviews.extend(
                parsed for parsed in (self._parse(item) for item in self._items(payload, "data")) if parsed
            )
            url = (payload.get("paging") or {}).get("next")
            params = None  # the next link already carries the query
            pages += 1

        logger.info("Facebook: %d ratings over %d page(s) for %s", len(reviews), pages, profile.external_profile_id)
        return self._in_window(reviews, window)

    def _parse(self, item: dict[str, Any]) -> RawReview | None:
        try:
            story_id = (item.get("open_graph_story") or {}).get("id")
            if not story_id:
                return None
            rating = item.get("rating") or _RECOMMENDATION_RATING.get(item.get("recommendation_type", ""))
            if rating is None:
                return None
            return RawReview(
                external_id=story_id,
                text=item.get("review_text", ""),
                author=(item.get("reviewer") or {}).get("name"),
                rating=int(rating),
                published_at=datetime.strptime(item["created_time"], "%Y-%m-%dT%H:%M:%S%z"),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ProviderError(self.provider_name, "malformed rating record") from exc
