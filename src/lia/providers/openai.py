"""OpenAI provider implementation.

Two request shapes are used:

- chat-completions for plain chats (``messages`` array, ``image_url`` parts);
- the Responses API for models that only support hosted tools (``-pro``
  variants) and whenever web search is enabled (structured ``input`` array,
  typed streaming events).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from lia.config import DEFAULT_MODELS, resolve_api_key
from lia.errors import AIError, ConfigurationError
from lia.limits import OPENAI_LIMITS
from lia.providers._errors import PLATFORM_TIMEOUT, is_timeout_error, wrap_provider_error
from lia.providers._utils import (
    close_stream,
    conversation_turns,
    document_text,
    has_documents,
    prepare_call,
    resolve_system_prompt,
)
from lia.providers.base import ProviderCapabilities
from lia.tools import get_enabled_tools, should_enable_web_search
from lia.types import AIResponse, StreamChunk, Usage

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator, Sequence

    from lia.types import GenerationOptions, Message, MessageInput, OptionsInput

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5"
# gpt-5-pro can think for several minutes before answering.
_CLIENT_TIMEOUT_S = 600.0
_CLIENT_MAX_RETRIES = 2
_RESPONSES_ONLY_SUFFIX = "-pro"


class OpenAIProvider:
    """OpenAI chat-completions and Responses API provider."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        models: Sequence[str] | None = None,
        timeout: float = _CLIENT_TIMEOUT_S,
        max_retries: int = _CLIENT_MAX_RETRIES,
    ) -> None:
        """Initialize with an API key."""
        if not api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY environment variable is required",
                hint="Set OPENAI_API_KEY or pass api_key=...",
            )
        self.api_key = api_key
        self.models: tuple[str, ...] = tuple(models or DEFAULT_MODELS["openai"])
        self.timeout = timeout
        self.max_retries = max_retries
        self._client: Any = None

    @classmethod
    def from_env(cls) -> OpenAIProvider:
        return cls(resolve_api_key("openai"))

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ConfigurationError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._client

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(
            vision=True,
            native_pdf=False,
            hosted_web_search=True,
            hosted_file_search=True,
            extended_thinking=False,
        )

    def max_tokens_for(self, model: str, requested: int | None = None) -> int:
        return OPENAI_LIMITS.resolve(model, requested)

    @staticmethod
    def uses_responses_api(model: str, options: GenerationOptions) -> bool:
        """Whether this call must go through the Responses API."""
        return model.endswith(_RESPONSES_ONLY_SUFFIX) or should_enable_web_search(
            options.enable_web_search
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def generate_response(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AIResponse:
        """Generate a non-streaming response."""
        msgs, opts = prepare_call(messages, options)
        model = opts.model or DEFAULT_MODEL
        client = self._get_client()
        try:
            if self.uses_responses_api(model, opts):
                params = self.build_responses_request(msgs, opts, stream=False)
                logger.debug("OpenAI %s: using Responses API", model)
                response = await client.responses.create(**params)
                return self._parse_responses_result(response, model)

            params = self.build_chat_request(msgs, opts, stream=False)
            completion = await client.chat.completions.create(**params)
            return self._parse_chat_completion(completion, model)
        except Exception as e:
            raise self._handle_error(e, model) from e

    async def generate_stream(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response; the final chunk carries usage."""
        msgs, opts = prepare_call(messages, options)
        model = opts.model or DEFAULT_MODEL
        if self.uses_responses_api(model, opts):
            chunks = self._stream_responses(msgs, opts, model)
        else:
            chunks = self._stream_chat(msgs, opts)
        try:
            async for chunk in chunks:
                yield chunk
        except Exception as e:
            raise self._handle_error(e, model) from e
        finally:
            # Propagates early abandonment to the inner generator's cleanup.
            await chunks.aclose()

    # ------------------------------------------------------------------
    # Chat-completions path
    # ------------------------------------------------------------------

    def build_chat_request(
        self,
        messages: Sequence[Message],
        options: GenerationOptions,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        """Build chat-completions kwargs.

        GPT-5 models reject ``temperature``/``top_p``, so those are not sent.
        """
        model = options.model or DEFAULT_MODEL
        tools = get_enabled_tools(
            # Hosted web search is only reachable through the Responses API.
            enable_web_search=False,
            enable_file_search=options.enable_file_search,
            has_documents=has_documents(messages),
        )
        params: dict[str, Any] = {
            "model": model,
            "messages": format_chat_messages(
                messages, resolve_system_prompt(messages, options)
            ),
            "max_completion_tokens": self.max_tokens_for(model, options.max_tokens),
        }
        if tools:
            params["tools"] = tools
        if options.reasoning_effort:
            params["reasoning_effort"] = options.reasoning_effort
        if options.verbosity:
            params["verbosity"] = options.verbosity
        if stream:
            params["stream"] = True
            params["stream_options"] = {"include_usage": True}
        return params

    async def _stream_chat(
        self, messages: list[Message], options: GenerationOptions
    ) -> AsyncGenerator[StreamChunk, None]:
        params = self.build_chat_request(messages, options, stream=True)
        stream = await self._get_client().chat.completions.create(**params)

        usage = Usage()
        finish_reason: str | None = None
        drained = False
        try:
            async for chunk in stream:
                chunk_usage = getattr(chunk, "usage", None)
                if chunk_usage is not None:
                    usage = Usage(
                        prompt_tokens=getattr(chunk_usage, "prompt_tokens", 0),
                        completion_tokens=getattr(chunk_usage, "completion_tokens", 0),
                    )
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                choice = choices[0]
                delta = getattr(choice, "delta", None)
                content = getattr(delta, "content", None) if delta is not None else None
                if content:
                    yield StreamChunk(content=content)
                if getattr(choice, "finish_reason", None):
                    finish_reason = choice.finish_reason
            drained = True
        finally:
            if not drained:
                await close_stream(stream, provider=self.name)

        yield StreamChunk(
            content="",
            is_complete=True,
            usage=usage,
            is_truncated=finish_reason == "length",
            stop_reason=finish_reason,
        )

    def _parse_chat_completion(self, completion: Any, model: str) -> AIResponse:
        choices = getattr(completion, "choices", None) or []
        content = ""
        finish_reason = None
        if choices:
            message = getattr(choices[0], "message", None)
            content = getattr(message, "content", None) or ""
            finish_reason = getattr(choices[0], "finish_reason", None)
        usage_raw = getattr(completion, "usage", None)
        return AIResponse(
            content=content,
            model=model,
            provider=self.name,
            usage=Usage(
                prompt_tokens=getattr(usage_raw, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage_raw, "completion_tokens", 0) or 0,
            ),
            stop_reason=finish_reason,
        )

    # ------------------------------------------------------------------
    # Responses API path
    # ------------------------------------------------------------------

    def build_responses_request(
        self,
        messages: Sequence[Message],
        options: GenerationOptions,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        """Build Responses API kwargs (``max_output_tokens``, nested reasoning)."""
        model = options.model or DEFAULT_MODEL
        params: dict[str, Any] = {
            "model": model,
            "input": format_responses_input(messages),
            "max_output_tokens": self.max_tokens_for(model, options.max_tokens),
        }
        instructions = resolve_system_prompt(messages, options)
        if instructions:
            params["instructions"] = instructions
        if should_enable_web_search(options.enable_web_search):
            params["tools"] = [{"type": "web_search"}]
        if options.reasoning_effort:
            params["reasoning"] = {"effort": options.reasoning_effort}
        if options.verbosity:
            params["text"] = {"verbosity": options.verbosity}
        if stream:
            params["stream"] = True
        return params

    async def _stream_responses(
        self, messages: list[Message], options: GenerationOptions, model: str
    ) -> AsyncGenerator[StreamChunk, None]:
        client = self._get_client()
        params = self.build_responses_request(messages, options, stream=True)
        try:
            stream = await client.responses.create(**params)
        except Exception as e:
            if not _is_stream_unsupported(e):
                raise
            logger.info(
                "OpenAI %s: Responses API streaming unavailable, falling back", model
            )
            params.pop("stream", None)
            response = self._parse_responses_result(
                await client.responses.create(**params), model
            )
            if response.content:
                yield StreamChunk(content=response.content)
            yield StreamChunk(
                content="",
                is_complete=True,
                usage=response.usage,
                is_truncated=response.stop_reason == "max_output_tokens",
                stop_reason=response.stop_reason,
            )
            return

        usage = Usage()
        stop_reason: str | None = None
        drained = False
        try:
            async for event in stream:
                event_type = getattr(event, "type", None)
                if event_type == "response.output_text.delta":
                    delta = getattr(event, "delta", None)
                    if delta:
                        yield StreamChunk(content=delta)
                elif event_type in ("response.completed", "response.incomplete"):
                    final = getattr(event, "response", None)
                    usage = _responses_usage(final)
                    stop_reason = _extract_finish_reason(final)
                elif event_type in ("error", "response.failed"):
                    raise AIError(
                        _responses_event_error(event),
                        provider=self.name,
                        model=model,
                        code=_responses_event_code(event),
                        details=event,
                    )
            drained = True
        finally:
            if not drained:
                await close_stream(stream, provider=self.name)

        yield StreamChunk(
            content="",
            is_complete=True,
            usage=usage,
            is_truncated=stop_reason == "max_output_tokens",
            stop_reason=stop_reason,
        )

    def _parse_responses_result(self, response: Any, model: str) -> AIResponse:
        return AIResponse(
            content=getattr(response, "output_text", "") or "",
            model=model,
            provider=self.name,
            usage=_responses_usage(response),
            stop_reason=_extract_finish_reason(response),
        )

    # ------------------------------------------------------------------
    # Errors and lifecycle
    # ------------------------------------------------------------------

    def _handle_error(self, exc: Exception, model: str) -> AIError:
        if model.endswith(_RESPONSES_ONLY_SUFFIX) and is_timeout_error(exc):
            return AIError(
                f"{model} did not finish before the platform request timeout. "
                "Try gpt-5, or run on a deployment that allows longer requests.",
                provider=self.name,
                model=model,
                code=PLATFORM_TIMEOUT,
                details=exc,
            )
        return wrap_provider_error(exc, provider=self.name, model=model)

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


def format_chat_messages(
    messages: Sequence[Message], system_prompt: str | None
) -> list[dict[str, Any]]:
    """Convert messages into chat-completions ``messages``."""
    formatted: list[dict[str, Any]] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})

    for message in conversation_turns(messages):
        if message.role == "user" and message.files:
            content: list[dict[str, Any]] = [{"type": "text", "text": message.content}]
            for file in message.files:
                if file.is_image:
                    image_url = file.url or file.data_uri()
                    if image_url:
                        content.append(
                            {"type": "image_url", "image_url": {"url": image_url}}
                        )
                else:
                    text = document_text(file)
                    if text:
                        content.append({"type": "text", "text": text})
            formatted.append({"role": "user", "content": content})
        else:
            formatted.append({"role": message.role, "content": message.content})
    return formatted


def format_responses_input(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert messages into the Responses API structured ``input`` array."""
    items: list[dict[str, Any]] = []
    for message in conversation_turns(messages):
        if message.role == "assistant":
            if message.content:
                items.append(
                    {
                        "role": "assistant",
                        "content": [{"type": "output_text", "text": message.content}],
                    }
                )
            continue

        parts: list[dict[str, Any]] = []
        if message.content:
            parts.append({"type": "input_text", "text": message.content})
        for file in message.files:
            if file.is_image:
                image_url = file.url or file.data_uri()
                if image_url:
                    parts.append({"type": "input_image", "image_url": image_url})
            elif file.is_pdf and (file.url or file.data):
                if file.url:
                    parts.append({"type": "input_file", "file_url": file.url})
                else:
                    parts.append(
                        {
                            "type": "input_file",
                            "filename": file.name,
                            "file_data": file.data_uri(),
                        }
                    )
            else:
                text = document_text(file)
                if text:
                    parts.append({"type": "input_text", "text": text})
        if not parts:
            parts.append({"type": "input_text", "text": ""})
        items.append({"role": "user", "content": parts})
    return items


def _responses_usage(response: Any) -> Usage:
    usage_raw = getattr(response, "usage", None)
    if usage_raw is None:
        return Usage()
    return Usage(
        prompt_tokens=getattr(usage_raw, "input_tokens", 0) or 0,
        completion_tokens=getattr(usage_raw, "output_tokens", 0) or 0,
    )


def _extract_finish_reason(response: Any) -> str | None:
    """Extract the Responses API finish reason, preferring incomplete_details.reason.

    ``response.status`` is "completed" or "incomplete"; when incomplete,
    ``incomplete_details.reason`` ("max_output_tokens", "content_filter") is
    the actionable root cause.
    """
    status = getattr(response, "status", None)
    if not isinstance(status, str):
        return None

    normalized_status = status.lower()
    if normalized_status == "incomplete":
        details = getattr(response, "incomplete_details", None)
        reason = getattr(details, "reason", None) if details is not None else None
        if isinstance(reason, str) and reason:
            return reason.lower()

    return normalized_status


def _responses_event_error(event: Any) -> str:
    message = getattr(event, "message", None)
    if isinstance(message, str) and message:
        return message
    response = getattr(event, "response", None)
    error = getattr(response, "error", None)
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return "OpenAI Responses API stream failed"


def _responses_event_code(event: Any) -> str:
    code = getattr(event, "code", None)
    if isinstance(code, str) and code:
        return code
    error = getattr(getattr(event, "response", None), "error", None)
    code = getattr(error, "code", None)
    return code if isinstance(code, str) and code else "UNKNOWN_ERROR"


def _is_stream_unsupported(exc: BaseException) -> bool:
    code = getattr(exc, "code", None)
    return code == "stream_not_supported" or "streaming" in str(exc).lower()
