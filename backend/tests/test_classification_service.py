"""Classification gateway tests."""

import pytest

from conftest import FakeProvider
from sentinel.config import Settings
from sentinel.core.categories import ALLOWED_CATEGORIES
from sentinel.core.exceptions import ClassificationFailure
from sentinel.services.classification_service import (
    ClassificationGateway,
    allowed_categories,
    is_valid_category,
)
from sentinel.services.llm_provider import (
    AnthropicProvider,
    GeminiProvider,
    OllamaProvider,
    OpenAIProvider,
    get_llm_provider,
)


def test_allowed_categories_are_exposed():
    assert allowed_categories() == ["Food", "Transport", "Utilities", "Entertainment", "Shopping"]
    assert is_valid_category("Food")
    assert not is_valid_category("food")
    assert not is_valid_category("Travel")


@pytest.mark.asyncio
async def test_classify_valid_response():
    provider = FakeProvider('{"category": "Transport", "confidence": 0.87}')
    gateway = ClassificationGateway(provider)

    result = await gateway.classify("Uber ride to airport")

    assert result.category == "Transport"
    assert result.confidence == 0.87
    assert provider.calls == ['Classify this transaction: "Uber ride to airport"']


@pytest.mark.asyncio
async def test_classify_extracts_json_from_surrounding_text():
    provider = FakeProvider('```json\n{"category": "Utilities", "confidence": 1}\n```')
    result = await ClassificationGateway(provider).classify("Electric bill")
    assert result.category == "Utilities"
    assert result.confidence == 1.0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        ClassificationFailure("provider down"),
        RuntimeError("socket closed"),
        "",
        "I think this is food",
        '{"category": "Travel", "confidence": 0.9}',
        '{"category": "Food", "confidence": 1.5}',
        '{"category": "Food", "confidence": -0.1}',
        '{"category": "Food", "confidence": "high"}',
        '{"category": "Food"}',
        '["Food", 0.9]',
    ],
)
async def test_classify_falls_back_on_bad_provider_output(response):
    result = await ClassificationGateway(FakeProvider(response)).classify("Pizza")
    assert result.category == ALLOWED_CATEGORIES[-1] == "Shopping"
    assert result.confidence == 0.5


@pytest.mark.asyncio
async def test_classify_times_out_to_fallback():
    provider = FakeProvider('{"category": "Food", "confidence": 0.9}', delay=1.0)
    gateway = ClassificationGateway(provider, timeout=0.05)

    result = await gateway.classify("Slow coffee")

    assert (result.category, result.confidence) == ("Shopping", 0.5)


@pytest.mark.asyncio
async def test_classify_empty_description_skips_provider():
    provider = FakeProvider('{"category": "Food", "confidence": 0.9}')
    result = await ClassificationGateway(provider).classify("   ")
    assert (result.category, result.confidence) == ("Shopping", 0.5)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_single_retry_before_fallback():
    provider = FakeProvider(
        ClassificationFailure("flaky"),
        '{"category": "Entertainment", "confidence": 0.7}',
    )
    gateway = ClassificationGateway(provider, retries=1)

    result = await gateway.classify("Netflix")

    assert result.category == "Entertainment"
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_retries_are_capped_at_one():
    provider = FakeProvider(ClassificationFailure("down"))
    gateway = ClassificationGateway(provider, retries=5)

    result = await gateway.classify("Anything")

    assert result.category == "Shopping"
    assert len(provider.calls) == 2


@pytest.mark.parametrize(
    "name, provider_cls",
    [
        ("openai", OpenAIProvider),
        ("anthropic", AnthropicProvider),
        ("gemini", GeminiProvider),
        ("ollama", OllamaProvider),
    ],
)
def test_provider_factory(name, provider_cls):
    settings = Settings(classification_provider=name, llm_base_url="http://localhost:11434/")
    provider = get_llm_provider(settings)
    assert isinstance(provider, provider_cls)


async def test_unreachable_provider_falls_back():
    # Nothing listens on port 1
    gateway = ClassificationGateway(OllamaProvider("http://127.0.0.1:1", "llama3"), timeout=2.0)

    result = await gateway.classify("Electric bill")

    assert result.category == "Shopping"
    assert result.confidence == 0.5
