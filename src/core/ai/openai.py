"""
src/core/ai/openai.py
=====================
OpenAI-compatible implementation (OpenAI itself or OpenRouter).
"""

from __future__ import annotations
from openai import AsyncOpenAI, OpenAIError
from core.ai.base import AIProviderError, BaseAIProvider


class OpenAIProvider(BaseAIProvider):
    """
    Provider for any endpoint speaking the OpenAI chat completions API.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o-mini",
        settings: dict | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(api_key, model_name, settings)
        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=base_url,
            timeout=self.settings.get("timeout", 30.0),
        )

    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=self.settings.get("temperature", 0.0),
                max_tokens=self.settings.get("max_tokens", 50),
            )
        except OpenAIError as e:
            raise AIProviderError(f"{self.model_name}: {type(e).__name__}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AIProviderError(f"{self.model_name}: empty completion")
        return content
