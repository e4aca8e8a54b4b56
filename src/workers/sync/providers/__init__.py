"""Review platform adapters."""

from workers.sync.providers.base import BaseProviderAdapter
from workers.sync.providers.facebook import FacebookReviewsAdapter
from workers.sync.providers.google import GoogleReviewsAdapter
from workers.sync.providers.trustpilot import TrustpilotReviewsAdapter

__all__ = [
    "BaseProviderAdapter",
    "FacebookReviewsAdapter",
    "GoogleReviewsAdapter",
    "TrustpilotReviewsAdapter",
]
