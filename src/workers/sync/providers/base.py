"""Abstract base class for all review platform adapters (Strategy Pattern)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import httpx

from core.exceptions import ProviderError
from workers.sync.models import FetchWindow, ProviderProfile, RawReview

logger = logging.getLogger(__name__)


class BaseProviderAdapter(ABC):
    """
    Contract for all review platform adapters.

    The HTTP client is injected via __init__ and carries the request timeout,
    so a slow platform ends in ``ProviderError`` instead of a hung job.

    Principles:
    - Return typed ``RawReview`` records, never raw payloads.
    - Only reviews published inside the requested window are returned.
    - Every transport / auth / payload failure becomes ``ProviderError`` whose
      message holds the provider name and status, never credentials or body.
    """

    provider_name: str = "provider"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    @abstractmethod
    async def fetch_reviews(
        self,
        profile: ProviderProfile,
        credentials: Mapping[str, Any],
        window: FetchWindow,
    ) -> list[RawReview]:
        """Fetch the reviews of ``profile`` published within ``window``."""
        ...

    async def _get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self.client.get(url, params=params, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise ProviderError(self.provider_name, "request timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                self.provider_name, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider_name, type(exc).__name__) from exc
        except ValueError as exc:
            raise ProviderError(self.provider_name, "invalid JSON response") from exc

        if not isinstance(payload, dict):
            raise ProviderError(self.provider_name, "unexpected response shape")
        return payload

    def _items(self, payload: Mapping[str, Any], key: str) -> list[Any]:
        """The list under ``key``; absent or null means empty, any other shape is an error."""
        items = payload.get(key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise ProviderError(self.provider_name, f"unexpected '{key}' field")
        return items

    @staticmethod
    def _require(credentials: Mapping[str, Any], key: str, fallback: str, provider: str) -> str:
        value = credentials.get(key) or fallback
        if not value:
            raise ProviderError(provider, f"missing credential '{key}'")
        return str(value)

    def _in_window(self, reviews: list[RawReview], window: FetchWindow) -> list[RawReview]:
        kept = [r for r in reviews if window.contains(r.published_at)]
        logger.debug(
            "%s: %d of %d reviews inside window", self.provider_name, len(kept), len(reviews)
        )
        return kept
