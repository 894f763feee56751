"""Mock provider for local development and tests without API calls."""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

from lia.config import DEFAULT_MODELS
from lia.providers._utils import conversation_turns, prepare_call
from lia.providers.base import ProviderCapabilities
from lia.types import AIResponse, StreamChunk, Usage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from lia.types import Message, MessageInput, OptionsInput

_CHARS_PER_TOKEN = 4

_NANO_REPLIES = (
    "Quick answer: Yes, that's correct.",
    "Classification: This is a valid request.",
    "Result: Processing complete.",
    "Status: Task completed successfully.",
    "Brief response: Understood and processed.",
)


class MockProvider:
    """Deterministic canned replies flavoured by model id.

    ``name`` defaults to ``replicate`` because the service substitutes this
    adapter into the replicate slot when no token is configured.
    """

    def __init__(
        self,
        *,
        name: str = "replicate",
        models: Sequence[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.models: tuple[str, ...] = tuple(models or DEFAULT_MODELS["replicate"])
        self.delay = delay

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(vision=False)

    def max_tokens_for(self, model: str, requested: int | None = None) -> int:  # noqa: ARG002
        return requested or 8192

    async def generate_response(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AIResponse:
        """Return a canned reply for the last message."""
        msgs, opts = prepare_call(messages, options)
        model = opts.model or self.models[0]
        prompt = _last_user_text(msgs)
        reply = mock_reply(prompt, model)
        if self.delay:
            await asyncio.sleep(self.delay)
        return AIResponse(
            content=reply,
            model=model,
            provider=self.name,
            usage=_estimate_usage(prompt, reply),
            stop_reason="stop",
        )

    async def generate_stream(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream the canned reply word by word."""
        msgs, opts = prepare_call(messages, options)
        model = opts.model or self.models[0]
        prompt = _last_user_text(msgs)
        reply = mock_reply(prompt, model)

        words = reply.split(" ")
        for i, word in enumerate(words):
            if self.delay:
                await asyncio.sleep(self.delay / len(words))
            yield StreamChunk(content=word if i == len(words) - 1 else f"{word} ")

        yield StreamChunk(
            content="",
            is_complete=True,
            usage=_estimate_usage(prompt, reply),
            is_truncated=False,
            stop_reason="stop",
        )

    async def aclose(self) -> None:
        return None


def mock_reply(message: str, model: str) -> str:
    """Return the canned reply for *message* in the style of *model*."""
    lowered = message.lower()
    if "gpt-5-nano" in model:
        return _NANO_REPLIES[len(message) % len(_NANO_REPLIES)]
    if "gpt-5-mini" in model:
        if "code" in lowered or "programming" in lowered:
            return (
                "I can help with coding! This is GPT-5 Mini providing a balanced "
                "response with medium-difficulty reasoning. What specific "
                "programming task would you like assistance with?"
            )
        return (
            "Hello! I'm GPT-5 Mini, offering a great balance between speed and "
            "capability. How can I assist you today?"
        )
    if "claude" in model:
        if "code" in lowered or "programming" in lowered:
            return (
                "Greetings! I'm Claude 4 Sonnet, and I excel at coding tasks. "
                "Let me help you with your programming challenge."
            )
        return (
            "Hello! I'm Claude 4 Sonnet, featuring hybrid reasoning with both "
            "near-instant responses and extended thinking. How may I assist you?"
        )
    if "deepseek-r1" in model:
        return (
            "Let me think about this step by step. "
            f'Analyzing your question: "{message}". '
            "As DeepSeek R1, I reason through multiple approaches and verify "
            "my chain of thought before answering."
        )
    if "hello" in lowered or re.search(r"\bhi\b", lowered):
        return (
            "Hello! I'm GPT-5, OpenAI's most advanced language model. "
            "How can I help you today?"
        )
    if "code" in lowered or "programming" in lowered:
        return (
            "I'd be happy to help with coding! What programming challenge are "
            "you working on?"
        )
    if "creative" in lowered or "write" in lowered:
        return (
            "Excellent! Creative writing is one of my strengths. What kind of "
            "creative project are you working on?"
        )
    return (
        "Thank you for your message! As GPT-5, I'm here to help with complex "
        f'tasks. I notice you mentioned: "{message}".'
    )


def _last_user_text(messages: Sequence[Message]) -> str:
    turns = conversation_turns(messages)
    return turns[-1].content if turns else ""


def _estimate_usage(prompt: str, reply: str) -> Usage:
    return Usage(
        prompt_tokens=len(prompt) // _CHARS_PER_TOKEN,
        completion_tokens=len(reply) // _CHARS_PER_TOKEN,
    )
