"""Review analysis collaborator backed by the LiteLLM Router.

Provides:
- ReviewAnalyzer: interface the reconciliation engine depends on
- LLMReviewAnalyzer: default implementation that prompts a fast model
  (Claude Haiku, GPT-4o-mini fallback) for sentiment, urgency, topics and a
  suggested owner reply, and parses the JSON answer
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any

import structlog
from litellm import Router
from pydantic import ValidationError

from src.reviewsync.config import Settings
from src.reviewsync.sync.errors import AnalysisError
from src.reviewsync.sync.schemas import AnalysisResult, CanonicalReview

logger = structlog.get_logger(__name__)

TOPICS = (
    "food_quality",
    "service_speed",
    "staff_behavior",
    "cleanliness",
    "pricing",
    "ambiance",
    "delivery",
    "wait_time",
    "portion_size",
    "parking",
    "noise",
    "other",
)

ANALYSIS_PROMPT = """Analyze this customer review. Return ONLY valid JSON, no markdown:
{{
  "sentiment": "positive" | "negative" | "neutral" | "mixed",
  "urgency": (number 1-10, where 10 is most urgent. Consider: star rating,
    emotional intensity, health/safety mentions, profanity, potential to go viral),
  "topics": (array of applicable topics from: {topics}),
  "suggested_reply": "A short, genuine owner reply under 120 words"
}}
Rating: {rating}/5
Review: {text}"""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class ReviewAnalyzer(ABC):
    """Enriches one canonical review."""

    @abstractmethod
    async def analyze(self, review: CanonicalReview) -> AnalysisResult | None:
        """Return enrichment for the review, or None if no result is available."""
        ...


def parse_analysis(content: str) -> AnalysisResult:
    """Parse the model's answer, tolerating surrounding prose or code fences.

    Raises:
        AnalysisError: If no JSON object can be extracted or it does not validate.
    """
    match = _JSON_OBJECT.search(content or "")
    if match is None:
        raise AnalysisError("Analysis response contained no JSON object")
    try:
        payload: dict[str, Any] = json.loads(match.group(0))
        urgency = int(payload.get("urgency", payload.get("urgency_score", 0)) or 0)
        return AnalysisResult(
            sentiment=str(payload["sentiment"]).lower(),
            urgency_score=max(0, min(10, urgency)),
            topics=[t for t in payload.get("topics") or payload.get("themes") or [] if t in TOPICS],
            suggested_reply=payload.get("suggested_reply") or None,
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError) as exc:
        raise AnalysisError(f"Unparseable analysis response: {exc}") from exc


class LLMReviewAnalyzer(ReviewAnalyzer):
    """Analyzer that calls the LiteLLM Router "fast" model group."""

    def __init__(self, settings: Settings, router: Router | None = None) -> None:
        self.router = router if router is not None else self._build_router(settings)

    @staticmethod
    def _build_router(settings: Settings) -> Router | None:
        model_list = []
        if settings.ANTHROPIC_API_KEY:
            model_list.append({
                "model_name": "fast",
                "litellm_params": {
                    "model": "anthropic/claude-haiku-4-5-20251001",
                    "api_key": settings.ANTHROPIC_API_KEY,
                },
            })
        if settings.OPENAI_API_KEY:
            model_list.append({
                "model_name": "fast",
                "litellm_params": {
                    "model": "openai/gpt-4o-mini",
                    "api_key": settings.OPENAI_API_KEY,
                },
            })

        if not model_list:
            logger.warning("analysis.disabled", reason="no LLM API keys configured")
            return None

        return Router(
            model_list=model_list,
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )

    async def analyze(self, review: CanonicalReview) -> AnalysisResult | None:
        """Prompt the model and parse its JSON answer.

        Returns None when no model is configured, so the review stays
        unprocessed-for-enrichment and is retried once keys are set.

        Raises:
            AnalysisError: On an unparseable answer.
        """
        if self.router is None:
            return None

        prompt = ANALYSIS_PROMPT.format(
            topics=", ".join(f'"{t}"' for t in TOPICS),
            rating=review.rating,
            text=review.content,
        )
        response = await self.router.acompletion(
            model="fast",
            messages=[{"role": "user", "content": prompt}],
            max_tokens=1000,
            temperature=0.2,
            metadata={"review_id": review.id, "platform": review.platform.value},
        )
        result = parse_analysis(response.choices[0].message.content)
        logger.debug(
            "analysis.completed",
            review_id=review.id,
            sentiment=result.sentiment.value,
            urgency=result.urgency_score,
        )
        return result
