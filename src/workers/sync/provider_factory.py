"""
ProviderFactory: Strategy Pattern router.

Decides which concrete BaseProviderAdapter to instantiate from the
source's provider-type tag.

Usage:
    adapter = ProviderFactory.create(source.source_type, client)
    reviews = await adapter.fetch_reviews(profile, credentials, window)
"""

from __future__ import annotations

import logging

import httpx

from core.exceptions import ProviderError
from core.models import SourceType
from workers.sync.providers import (
    BaseProviderAdapter,
    FacebookReviewsAdapter,
    GoogleReviewsAdapter,
    TrustpilotReviewsAdapter,
)

logger = logging.getLogger(__name__)

# ── Registry: maps SourceType → concrete adapter class ────────────────

_ADAPTER_REGISTRY: dict[SourceType, type[BaseProviderAdapter]] = {
    SourceType.GOOGLE: GoogleReviewsAdapter,
    SourceType.FACEBOOK: FacebookReviewsAdapter,
    SourceType.TRUSTPILOT: TrustpilotReviewsAdapter,
}


class ProviderFactory:
    """
    Creates the correct BaseProviderAdapter instance for a source type.
    """

    @staticmethod
    def create(source_type: SourceType, client: httpx.AsyncClient) -> BaseProviderAdapter:
        adapter_cls = _ADAPTER_REGISTRY.get(source_type)
        if adapter_cls is None:
            raise ProviderError(str(source_type), "no adapter registered")

        logger.debug("Using %s for source_type=%s.", adapter_cls.__name__, source_type)
        return adapter_cls(client)
