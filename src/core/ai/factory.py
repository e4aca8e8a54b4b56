"""
src/core/ai/factory.py
======================
Factory for AI providers.
"""

from __future__ import annotations
from typing import Any
from core.config import settings
from core.ai.base import BaseAIProvider
from core.ai.gemini import GeminiProvider
from core.ai.openai import OpenAIProvider


class AIFactory:
    """
    Static factory to create the correct AI provider.
    """

    @staticmethod
    def create(model_name: str | None = None, api_key: str | None = None, **kwargs: Any) -> BaseAIProvider:
        """
        Create a provider based on model name.

        ``gemini*`` models go to Google directly; everything else is sent to
        the OpenAI-compatible endpoint (OpenRouter unless reconfigured).
        """
        model_name = model_name or settings.llm_model
        m = model_name.lower()

        if m.startswith("gemini"):
            return GeminiProvider(
                api_key=api_key or settings.gemini_api_key,
                model_name=model_name,
                settings=kwargs,
            )
        return OpenAIProvider(
            api_key=api_key or settings.openai_api_key,
            model_name=model_name,
            settings=kwargs,
            base_url=settings.llm_base_url or None,
        )
