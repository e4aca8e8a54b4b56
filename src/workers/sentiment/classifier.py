"""
Sentiment classification of review content.

Two strategies share one async interface:
  - RatingHeuristicClassifier: derives the label from the star rating.
  - LLMSentimentClassifier: asks an LLM (via core.ai) for a JSON verdict.

``FallbackClassifier`` wraps the LLM and degrades to the heuristic whenever
the model fails or answers garbage, so a sync never fails on sentiment.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod

from core.ai.base import AIProviderError, BaseAIProvider
from core.config import Settings
from core.exceptions import ClassificationError
from core.models import Sentiment
from workers.sync.models import SentimentResult

logger = logging.getLogger(__name__)

_RATING_CONFIDENCE = {1: 0.90, 2: 0.75, 3: 0.60, 4: 0.75, 5: 0.90}

SYSTEM_PROMPT = (
    "You classify customer reviews. Answer with a single JSON object "
    '{"sentiment": "POSITIVE" | "NEUTRAL" | "NEGATIVE", "confidence": <0.0-1.0>} '
    "and nothing else."
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class BaseSentimentClassifier(ABC):
    """Contract: classify one review from its star rating and text."""

    @abstractmethod
    async def classify(self, rating: int, text: str) -> SentimentResult:
        ...


class RatingHeuristicClassifier(BaseSentimentClassifier):
    """4-5 stars POSITIVE, 3 NEUTRAL, 1-2 NEGATIVE."""

    async def classify(self, rating: int, text: str) -> SentimentResult:
        if rating >= 4:
            label = Sentiment.POSITIVE
        elif rating == 3:
            label = Sentiment.NEUTRAL
        else:
            label = Sentiment.NEGATIVE
        return SentimentResult(label=label, confidence=_RATING_CONFIDENCE.get(rating, 0.60))


class LLMSentimentClassifier(BaseSentimentClassifier):
    """Classifies through an LLM provider. Raises ClassificationError on any failure."""

    def __init__(self, provider: BaseAIProvider) -> None:
        self.provider = provider

    async def classify(self, rating: int, text: str) -> SentimentResult:
        body = (text or "").strip() or "(no text)"
        prompt = f"Rating: {rating}/5\nReview:\n{body}"
        try:
            answer = await self.provider.generate_text(prompt, system_prompt=SYSTEM_PROMPT)
        except AIProviderError as exc:
            raise ClassificationError(str(exc)) from exc
        return self.parse(answer)

    @staticmethod
    def parse(answer: str) -> SentimentResult:
        match = _JSON_OBJECT.search(answer or "")
        if not match:
            raise ClassificationError("LLM answer holds no JSON object")
        try:
            data = json.loads(match.group(0))
            label = Sentiment(str(data["sentiment"]).strip().upper())
            confidence = float(data.get("confidence", 0.5))
        except (ValueError, KeyError, TypeError) as exc:
            raise ClassificationError(f"Unusable LLM answer: {exc}") from exc
        return SentimentResult(label=label, confidence=min(max(confidence, 0.0), 1.0))


class FallbackClassifier(BaseSentimentClassifier):
    """Tries ``primary`` first; on ClassificationError uses ``fallback``."""

    def __init__(
        self,
        primary: BaseSentimentClassifier,
        fallback: BaseSentimentClassifier | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback or RatingHeuristicClassifier()

    async def classify(self, rating: int, text: str) -> SentimentResult:
        try:
            return await self.primary.classify(rating, text)
        except ClassificationError as exc:
            logger.warning("Sentiment classifier failed, using rating heuristic: %s", exc)
            return await self.fallback.classify(rating, text)


def build_classifier(config: Settings) -> BaseSentimentClassifier:
    """Pick the classifier configured by ``sentiment_classifier``."""
    if config.sentiment_classifier == "llm":
        from core.ai.factory import AIFactory

        provider = AIFactory.create(config.llm_model, temperature=0.0)
        logger.info("Sentiment: LLM classifier (%s) with heuristic fallback", config.llm_model)
        return FallbackClassifier(LLMSentimentClassifier(provider))
    return RatingHeuristicClassifier()
