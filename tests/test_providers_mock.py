from __future__ import annotations

import pytest

from lia.providers.mock import MockProvider, mock_reply
from lia.types import Usage
from tests.helpers import collect

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("model", "message", "fragment"),
    [
        ("openai/gpt-5", "Hi there!", "I'm GPT-5, OpenAI's most advanced"),
        ("openai/gpt-5", "help with code", "happy to help with coding"),
        ("openai/gpt-5", "write a poem", "Creative writing"),
        ("openai/gpt-5", "weather in Oslo", 'you mentioned: "weather in Oslo"'),
        ("openai/gpt-5-mini", "anything", "GPT-5 Mini"),
        ("anthropic/claude-4-sonnet", "programming please", "excel at coding"),
        ("deepseek-ai/deepseek-r1", "why?", 'Analyzing your question: "why?"'),
    ],
)
def test_reply_is_flavoured_by_model_and_message(model: str, message: str, fragment: str) -> None:
    assert fragment in mock_reply(message, model)


def test_hi_matches_whole_word_only() -> None:
    assert "most advanced" not in mock_reply("this is a thing", "openai/gpt-5")


def test_nano_reply_is_deterministic() -> None:
    first = mock_reply("same input", "openai/gpt-5-nano")
    assert first == mock_reply("same input", "openai/gpt-5-nano")
    assert len(first) < 50


@pytest.mark.asyncio
async def test_response_uses_last_turn_and_estimates_usage() -> None:
    provider = MockProvider()
    messages = [
        {"role": "system", "content": "ignored"},
        {"role": "user", "content": "Hi there!"},
    ]

    response = await provider.generate_response(messages, {"model": "openai/gpt-5"})

    assert response.content == (
        "Hello! I'm GPT-5, OpenAI's most advanced language model. How can I help you today?"
    )
    assert response.provider == "replicate"
    assert response.usage == Usage(
        prompt_tokens=len("Hi there!") // 4, completion_tokens=len(response.content) // 4
    )


@pytest.mark.asyncio
async def test_stream_concatenates_to_response_with_single_terminal_chunk() -> None:
    provider = MockProvider(name="openai")
    messages = [{"role": "user", "content": "help me write a story"}]

    response = await provider.generate_response(messages)
    chunks = await collect(provider.generate_stream(messages))

    assert "".join(c.content for c in chunks) == response.content
    assert [c.is_complete for c in chunks].count(True) == 1
    assert chunks[-1].is_complete
    assert chunks[-1].usage == response.usage
    assert chunks[-1].is_truncated is False


def test_defaults() -> None:
    provider = MockProvider()
    assert provider.models[0] == "openai/gpt-5"
    assert provider.capabilities.vision is False
    assert provider.max_tokens_for("anything") == 8192
    assert provider.max_tokens_for("anything", 100) == 100
