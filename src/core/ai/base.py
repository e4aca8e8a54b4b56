"""
src/core/ai/base.py
===================
Abstract base class for all LLM providers.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any


class AIProviderError(Exception):
    """The provider call failed or returned nothing usable."""


class BaseAIProvider(ABC):
    """
    Standard interface for generating content via LLMs.

    Implementations raise ``AIProviderError`` instead of returning error text,
    so callers can decide how to degrade.
    """

    def __init__(self, api_key: str, model_name: str, settings: dict[str, Any] | None = None) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.settings = settings or {}

    @abstractmethod
    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str:
        """
        Generate a text response given a prompt and optional system prompt.
        """
        pass
