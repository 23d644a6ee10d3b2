"""Transaction classification gateway.

Wraps an LLM provider and turns its free-text answer into a category from the
closed ``ALLOWED_CATEGORIES`` set. The gateway fails closed: whatever goes
wrong (provider error, timeout, unparseable answer, unknown category,
confidence out of range) the caller gets the fallback classification
(last allowed category, confidence 0.5) instead of an exception.
"""

import asyncio
import json
import re

import structlog
from pydantic import ValidationError as PydanticValidationError

from sentinel.config import Settings
from sentinel.core.categories import (
    ALLOWED_CATEGORIES,
    FALLBACK_CATEGORY,
    FALLBACK_CONFIDENCE,
    allowed_categories,
    is_valid_category,
)
from sentinel.core.exceptions import ClassificationFailure
from sentinel.schemas.classification import ClassificationResult
from sentinel.services.llm_provider import LLMProviderBase, get_llm_provider

logger = structlog.get_logger()

__all__ = [
    "ClassificationGateway",
    "allowed_categories",
    "build_classification_gateway",
    "is_valid_category",
]

SYSTEM_PROMPT = """You are a financial transaction classifier. Your job is to categorize transactions based on their descriptions.

You must classify transactions into EXACTLY ONE of these categories:
- Food: Groceries, restaurants, cafes, food delivery
- Transport: Gas, public transit, taxis, car maintenance, parking
- Utilities: Electricity, water, internet, phone bills
- Entertainment: Movies, games, sports, hobbies, streaming services
- Shopping: Clothing, electronics, household items, general shopping

Respond with ONLY a JSON object in this format (no markdown, no explanation):
{"category": "Category Name", "confidence": 0.95}

The confidence score should be between 0 and 1, where 1 is absolutely certain."""


def fallback_result() -> ClassificationResult:
    return ClassificationResult(category=FALLBACK_CATEGORY, confidence=FALLBACK_CONFIDENCE)


class ClassificationGateway:
    """Classify transaction descriptions; never raises."""

    def __init__(
        self,
        provider: LLMProviderBase,
        timeout: float = 10.0,
        retries: int = 0,
    ) -> None:
        self.provider = provider
        self.timeout = timeout
        # At most one extra attempt: the fallback is the resilience mechanism
        self.retries = max(0, min(retries, 1))

    async def classify(self, description: str) -> ClassificationResult:
        if not description or not description.strip():
            logger.warning("classification_fallback", reason="empty_description")
            return fallback_result()

        for attempt in range(self.retries + 1):
            try:
                return await self._classify_once(description)
            except ClassificationFailure as e:
                logger.warning(
                    "classification_failed",
                    attempt=attempt + 1,
                    model=self.provider.get_model_name(),
                    error=e.message,
                )

        logger.warning("classification_fallback", reason="provider_failure")
        return fallback_result()

    async def _classify_once(self, description: str) -> ClassificationResult:
        try:
            content = await asyncio.wait_for(
                self.provider.complete(
                    SYSTEM_PROMPT,
                    f'Classify this transaction: "{description}"',
                    temperature=0.3,
                    max_tokens=50,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ClassificationFailure(f"classification timed out after {self.timeout}s") from e
        except ClassificationFailure:
            raise
        except Exception as e:
            raise ClassificationFailure(f"unexpected provider error: {e}") from e

        if not content:
            raise ClassificationFailure("empty response from provider")
        return self._parse_response(content)

    def _parse_response(self, response_text: str) -> ClassificationResult:
        """Parse the model's JSON answer.

        An answer that parses but is out of contract (unknown category,
        confidence outside [0, 1]) is not worth retrying, so it maps straight
        to the fallback instead of raising.
        """
        text = response_text.strip()

        parsed = self._try_parse_json(text)
        if parsed is None:
            # Models sometimes wrap the object in prose or a code fence
            json_match = re.search(r"\{[^{}]+\}", text)
            if json_match:
                parsed = self._try_parse_json(json_match.group())

        if not isinstance(parsed, dict):
            raise ClassificationFailure(f"unparseable response: {text[:200]}")

        category = parsed.get("category")
        confidence = parsed.get("confidence")
        if (
            not isinstance(category, str)
            or category not in ALLOWED_CATEGORIES
            or isinstance(confidence, bool)
            or not isinstance(confidence, (int, float))
        ):
            logger.warning("classification_invalid_response", response=parsed)
            return fallback_result()

        try:
            return ClassificationResult(category=category, confidence=float(confidence))
        except PydanticValidationError:
            logger.warning("classification_invalid_response", response=parsed)
            return fallback_result()

    @staticmethod
    def _try_parse_json(text: str):
        try:
            return json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return None


def build_classification_gateway(settings: Settings) -> ClassificationGateway:
    return ClassificationGateway(
        get_llm_provider(settings),
        timeout=settings.classification_timeout,
        retries=settings.classification_retries,
    )
