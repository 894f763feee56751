"""Real API integration tests.

These tests make real vendor calls and are intentionally compact:
- ENABLE_API_TESTS=1 is required to run any API tests
- each provider case also needs its own credential variable
"""

from __future__ import annotations

import os

import pytest

from lia import create_ai_service
from tests.conftest import ANTHROPIC_MODEL, GEMINI_MODEL, OPENAI_MODEL, REPLICATE_MODEL

pytestmark = [pytest.mark.api, pytest.mark.slow]

_PROVIDERS: list[tuple[str, str, str]] = [
    ("openai", "OPENAI_API_KEY", "gpt-5-nano"),
    ("anthropic", "ANTHROPIC_API_KEY", ANTHROPIC_MODEL),
    ("gemini", "GEMINI_API_KEY", GEMINI_MODEL),
    ("replicate", "REPLICATE_API_TOKEN", REPLICATE_MODEL),
]


def _require(env_var: str) -> None:
    if not os.getenv(env_var):
        pytest.skip(f"{env_var} not set")


@pytest.mark.asyncio
@pytest.mark.parametrize(("provider", "env_var", "model"), _PROVIDERS, ids=[p[0] for p in _PROVIDERS])
async def test_live_stream_matches_contract(provider: str, env_var: str, model: str) -> None:
    """E2E: text chunks followed by exactly one terminal chunk."""
    _require(env_var)
    service = create_ai_service(default_provider=provider)
    try:
        chunks = [
            chunk
            async for chunk in service.generate_stream(
                [{"role": "user", "content": "Reply with exactly: PONG"}],
                {"model": model, "enable_web_search": False, "max_tokens": 512},
            )
        ]
    finally:
        await service.aclose()

    assert [c.is_complete for c in chunks].count(True) == 1
    assert chunks[-1].is_complete
    text = "".join(c.content for c in chunks)
    assert "pong" in text.lower()


@pytest.mark.asyncio
async def test_live_openai_web_search_uses_responses_api() -> None:
    """E2E: default web search routes OpenAI through the Responses API."""
    _require("OPENAI_API_KEY")
    service = create_ai_service(default_provider="openai")
    try:
        response = await service.generate_response(
            [{"role": "user", "content": "Name the current year in one word."}],
            {"model": OPENAI_MODEL, "reasoning_effort": "low"},
        )
    finally:
        await service.aclose()

    assert response.provider == "openai"
    assert response.content.strip()
    assert response.usage.total_tokens == (
        response.usage.prompt_tokens + response.usage.completion_tokens
    )
