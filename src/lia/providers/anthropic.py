"""Anthropic Messages API provider."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from lia.config import DEFAULT_MODELS, resolve_api_key
from lia.errors import ConfigurationError
from lia.limits import ANTHROPIC_LIMITS, recommended_max_tokens
from lia.providers._errors import extract_vendor_error, wrap_provider_error
from lia.providers._utils import (
    close_stream,
    conversation_turns,
    document_text,
    prepare_call,
    resolve_system_prompt,
)
from lia.providers.base import ProviderCapabilities
from lia.tools import should_enable_web_search
from lia.types import AIResponse, StreamChunk, Usage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from lia.types import (
        Attachment,
        GenerationOptions,
        Message,
        MessageInput,
        OptionsInput,
    )

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
_DEFAULT_TEMPERATURE = 1.0
_MIN_THINKING_BUDGET = 1024
_WEB_SEARCH_MAX_USES = 5
_WEB_SEARCH_BETA_HEADER = "web-search-2025-03-05"
_OVERLOADED_MESSAGE = (
    "Anthropic is temporarily overloaded. Please retry in a few moments "
    "or switch to another provider."
)
#: Image media types accepted in ``image`` blocks; other images are not sent as images.
SUPPORTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


class AnthropicProvider:
    """Anthropic Messages API provider."""

    name = "anthropic"

    def __init__(self, api_key: str, *, models: Sequence[str] | None = None) -> None:
        """Initialize with an API key."""
        if not api_key:
            raise ConfigurationError(
                "ANTHROPIC_API_KEY environment variable is required",
                hint="Set ANTHROPIC_API_KEY or pass api_key=...",
            )
        self.api_key = api_key
        self.models: tuple[str, ...] = tuple(models or DEFAULT_MODELS["anthropic"])
        self._client: Any = None

    @classmethod
    def from_env(cls) -> AnthropicProvider:
        return cls(resolve_api_key("anthropic"))

    def _get_client(self) -> Any:
        """Lazily initialize and return the async Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise ConfigurationError(
                    "anthropic package not installed",
                    hint="pip install anthropic",
                ) from e
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(
            vision=True,
            native_pdf=True,
            hosted_web_search=True,
            hosted_file_search=False,
            extended_thinking=True,
        )

    def max_tokens_for(self, model: str, requested: int | None = None) -> int:
        return ANTHROPIC_LIMITS.resolve(model, requested)

    def build_request(
        self, messages: Sequence[Message], options: GenerationOptions
    ) -> dict[str, Any]:
        """Build ``messages.create`` kwargs.

        Extended thinking requires ``temperature == 1``, a budget of at least
        1024 tokens and ``max_tokens`` above the budget. Without an explicit
        ``max_tokens`` the thinking-mode output budget is requested.
        """
        model = options.model or DEFAULT_MODEL
        params: dict[str, Any] = {
            "model": model,
            "messages": format_messages(messages),
            "max_tokens": self.max_tokens_for(model, options.max_tokens),
            "temperature": (
                options.temperature
                if options.temperature is not None
                else _DEFAULT_TEMPERATURE
            ),
        }

        system = resolve_system_prompt(messages, options)
        if system:
            params["system"] = system
        if options.top_p is not None:
            params["top_p"] = options.top_p

        if options.extended_thinking and options.thinking_budget_tokens:
            budget = max(options.thinking_budget_tokens, _MIN_THINKING_BUDGET)
            if options.max_tokens is None:
                params["max_tokens"] = self.max_tokens_for(
                    model,
                    recommended_max_tokens(
                        model, extended_thinking=True, thinking_budget_tokens=budget
                    ),
                )
            # The vendor requires max_tokens > budget_tokens.
            budget = max(min(budget, params["max_tokens"] - 1), _MIN_THINKING_BUDGET)
            params["max_tokens"] = max(params["max_tokens"], budget + 1)
            params["thinking"] = {"type": "enabled", "budget_tokens": budget}
            params["temperature"] = 1.0
            params.pop("top_p", None)

        if should_enable_web_search(options.enable_web_search):
            params["tools"] = [
                {
                    "type": "web_search_20250305",
                    "name": "web_search",
                    "max_uses": _WEB_SEARCH_MAX_USES,
                }
            ]
            params["extra_headers"] = {"anthropic-beta": _WEB_SEARCH_BETA_HEADER}
        return params

    async def generate_response(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AIResponse:
        """Generate a non-streaming response."""
        msgs, opts = prepare_call(messages, options)
        params = self.build_request(msgs, opts)
        model = params["model"]
        try:
            response = await self._get_client().messages.create(**params)
        except Exception as e:
            raise self._handle_error(e, model) from e

        text_parts = [
            getattr(block, "text", "")
            for block in getattr(response, "content", None) or []
            if getattr(block, "type", None) == "text"
        ]
        usage_raw = getattr(response, "usage", None)
        return AIResponse(
            content="".join(text_parts),
            model=model,
            provider=self.name,
            usage=Usage(
                prompt_tokens=getattr(usage_raw, "input_tokens", 0) or 0,
                completion_tokens=getattr(usage_raw, "output_tokens", 0) or 0,
            ),
            stop_reason=getattr(response, "stop_reason", None),
        )

    async def generate_stream(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream text deltas; ``message_stop`` produces the terminal chunk."""
        msgs, opts = prepare_call(messages, options)
        params = self.build_request(msgs, opts)
        model = params["model"]
        try:
            stream = await self._get_client().messages.create(**params, stream=True)
        except Exception as e:
            raise self._handle_error(e, model) from e

        prompt_tokens = 0
        completion_tokens = 0
        stop_reason: str | None = None
        finished = False
        try:
            async for event in stream:
                event_type = getattr(event, "type", None)
                if event_type == "message_start":
                    usage_raw = getattr(getattr(event, "message", None), "usage", None)
                    prompt_tokens = getattr(usage_raw, "input_tokens", 0) or 0
                    completion_tokens = getattr(usage_raw, "output_tokens", 0) or 0
                elif event_type == "content_block_delta":
                    delta = getattr(event, "delta", None)
                    if getattr(delta, "type", None) == "text_delta":
                        text = getattr(delta, "text", "")
                        if text:
                            yield StreamChunk(content=text)
                elif event_type == "message_delta":
                    delta = getattr(event, "delta", None)
                    stop_reason = getattr(delta, "stop_reason", None) or stop_reason
                    usage_raw = getattr(event, "usage", None)
                    output_tokens = getattr(usage_raw, "output_tokens", None)
                    if output_tokens is not None:
                        completion_tokens = output_tokens
                elif event_type == "message_stop":
                    finished = True
                    yield StreamChunk(
                        content="",
                        is_complete=True,
                        usage=Usage(
                            prompt_tokens=prompt_tokens,
                            completion_tokens=completion_tokens,
                        ),
                        is_truncated=stop_reason == "max_tokens",
                        stop_reason=stop_reason,
                    )
                    break
        except Exception as e:
            raise self._handle_error(e, model) from e
        finally:
            await close_stream(stream, provider=self.name)

        if not finished:
            # Stream ended without message_stop; still terminate the sequence.
            yield StreamChunk(
                content="",
                is_complete=True,
                usage=Usage(
                    prompt_tokens=prompt_tokens, completion_tokens=completion_tokens
                ),
                is_truncated=stop_reason == "max_tokens",
                stop_reason=stop_reason,
            )

    def _handle_error(self, exc: Exception, model: str) -> Exception:
        vendor_type, _ = extract_vendor_error(exc)
        if vendor_type == "overloaded_error":
            return wrap_provider_error(
                exc, provider=self.name, model=model, message=_OVERLOADED_MESSAGE
            )
        return wrap_provider_error(exc, provider=self.name, model=model)

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


def format_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert conversation turns to Anthropic content blocks.

    Anthropic requires strict user/assistant alternation, so consecutive
    same-role turns are merged.
    """
    formatted: list[dict[str, Any]] = []
    for message in conversation_turns(messages):
        blocks = _content_blocks(message)
        if formatted and formatted[-1]["role"] == message.role:
            formatted[-1]["content"].extend(blocks)
        else:
            formatted.append({"role": message.role, "content": blocks})
    return formatted


def _content_blocks(message: Message) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if message.content:
        blocks.append({"type": "text", "text": message.content})

    if message.role == "user":
        for file in message.files:
            block = _attachment_block(file)
            if block is not None:
                blocks.append(block)

    if not blocks:
        blocks.append({"type": "text", "text": ""})
    return blocks


def _attachment_block(file: Attachment) -> dict[str, Any] | None:
    is_image = file.type in SUPPORTED_IMAGE_TYPES
    if is_image or file.is_pdf:
        block_type = "image" if is_image else "document"
        if file.data:
            return {
                "type": block_type,
                "source": {
                    "type": "base64",
                    "media_type": file.type,
                    "data": file.data,
                },
            }
        if file.url:
            return {"type": block_type, "source": {"type": "url", "url": file.url}}

    text = document_text(file)
    if text:
        return {"type": "text", "text": text}
    logger.debug("Skipping attachment %s: no content usable by Anthropic", file.name)
    return None
