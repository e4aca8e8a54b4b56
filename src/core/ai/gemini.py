"""
src/core/ai/gemini.py
=====================
Google Gemini implementation.
"""

from __future__ import annotations
import google.generativeai as genai
from core.ai.base import AIProviderError, BaseAIProvider


class GeminiProvider(BaseAIProvider):
    """
    Provider for Google Gemini models.
    """

    def __init__(self, api_key: str, model_name: str = "gemini-1.5-flash", settings: dict | None = None) -> None:
        super().__init__(api_key, model_name, settings)
        genai.configure(api_key=self.api_key)
        self._generation_config = {
            "temperature": self.settings.get("temperature", 0.0),
            "max_output_tokens": self.settings.get("max_tokens", 50),
        }

    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str:
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_prompt,
            generation_config=self._generation_config,
        )
        try:
            response = await model.generate_content_async(prompt)
            text = response.text
        except Exception as e:  # the SDK raises several unrelated types
            raise AIProviderError(f"{self.model_name}: {type(e).__name__}") from e

        if not text:
            raise AIProviderError(f"{self.model_name}: empty completion")
        return text
