"""LLM provider abstraction for transaction classification.

Supports OpenAI, Anthropic (Claude), Google Gemini and Ollama (local) with a
unified interface. A provider receives a system prompt and one user message
and returns the raw assistant text. Any transport or API failure is raised as
``ClassificationFailure``; deciding what to do about it is the gateway's job.
"""

from abc import ABC, abstractmethod

import httpx
import structlog

from sentinel.config import Settings
from sentinel.core.exceptions import ClassificationFailure

logger = structlog.get_logger()


class LLMProviderBase(ABC):
    """Abstract base for completion providers."""

    model: str = "?"

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 50,
    ) -> str:
        """Send one prompt and return the assistant's text response.

        Raises:
            ClassificationFailure: on any provider-side error.
        """

    def get_model_name(self) -> str:
        """Return the configured model name for this provider."""
        return self.model


class OpenAIProvider(LLMProviderBase):
    """OpenAI chat completions API."""

    def __init__(self, api_key: str, model: str) -> None:
        self.api_key = api_key
        self.model = model
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 50,
    ) -> str:
        if not self.api_key:
            raise ClassificationFailure("OpenAI API key not configured")

        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise ClassificationFailure(f"OpenAI call failed: {e}") from e

        if not response.choices:
            raise ClassificationFailure("No response from OpenAI API")
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProviderBase):
    """Anthropic Claude messages API.

    Key difference: system prompt is a top-level parameter, not a message.
    """

    def __init__(self, api_key: str, model: str) -> None:
        self.api_key = api_key
        self.model = model
        self._client = None

    def _get_client(self):
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 50,
    ) -> str:
        if not self.api_key:
            raise ClassificationFailure("Anthropic API key not configured")

        try:
            response = await self._get_client().messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise ClassificationFailure(f"Anthropic call failed: {e}") from e

        return response.content[0].text if response.content else ""


class GeminiProvider(LLMProviderBase):
    """Google Gemini via the google-genai SDK (system instruction is a config field)."""

    def __init__(self, api_key: str, model: str) -> None:
        self.api_key = api_key
        self.model = model

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 50,
    ) -> str:
        if not self.api_key:
            raise ClassificationFailure("Gemini API key not configured")

        from google import genai
        from google.genai import types

        client = genai.Client(api_key=self.api_key)
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Content(
                        role="user",
                        parts=[types.Part.from_text(text=user_message)],
                    )
                ],
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
        except Exception as e:
            raise ClassificationFailure(f"Gemini call failed: {e}") from e

        return response.text or ""


class OllamaProvider(LLMProviderBase):
    """Ollama-based provider using the /api/chat endpoint."""

    def __init__(self, base_url: str, model: str, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 50,
    ) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=5.0,
                    read=self.timeout,
                    write=5.0,
                    pool=5.0,
                )
            ) as client:
                resp = await client.post(
                    f"{self.base_url}/api/chat",
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": user_message},
                        ],
                        "stream": False,
                        "options": {
                            "temperature": temperature,
                            "num_predict": max_tokens,
                        },
                    },
                )
        except httpx.TimeoutException as e:
            logger.warning("ollama_timeout", model=self.model)
            raise ClassificationFailure("Ollama request timed out") from e
        except httpx.HTTPError as e:
            logger.warning("ollama_unreachable", url=self.base_url)
            raise ClassificationFailure(f"Ollama unreachable: {e}") from e

        if resp.status_code != 200:
            logger.warning("ollama_error", status=resp.status_code, body=resp.text[:200])
            raise ClassificationFailure(f"Ollama returned HTTP {resp.status_code}")
        return resp.json().get("message", {}).get("content", "")


def get_llm_provider(settings: Settings) -> LLMProviderBase:
    """Factory: return the configured classification provider."""
    provider = settings.classification_provider.lower()
    if provider == "anthropic":
        return AnthropicProvider(settings.anthropic_api_key, settings.anthropic_model)
    if provider == "gemini":
        return GeminiProvider(settings.gemini_api_key, settings.gemini_model)
    if provider == "ollama":
        return OllamaProvider(
            settings.llm_base_url, settings.llm_model, timeout=settings.classification_timeout
        )
    return OpenAIProvider(settings.openai_api_key, settings.openai_model)
