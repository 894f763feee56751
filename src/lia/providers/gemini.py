"""Google Gemini provider (google-genai SDK)."""

from __future__ import annotations

import base64
import binascii
import inspect
import logging
from typing import TYPE_CHECKING, Any

from lia.config import DEFAULT_MODELS, resolve_api_key
from lia.errors import ConfigurationError
from lia.limits import GEMINI_LIMITS
from lia.providers._errors import wrap_provider_error
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

    from lia.types import Attachment, GenerationOptions, Message, MessageInput, OptionsInput

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
GEMINI_ERROR = "GEMINI_ERROR"
SYSTEM_ACKNOWLEDGEMENT = "I understand. I'll follow these instructions."
# -1 lets the model pick its own thinking budget.
_DYNAMIC_THINKING_BUDGET = -1


class GeminiProvider:
    """Google Gemini API provider."""

    name = "gemini"

    def __init__(self, api_key: str, *, models: Sequence[str] | None = None) -> None:
        """Create provider with an API key."""
        if not api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY environment variable is required",
                hint="Set GEMINI_API_KEY or pass api_key=...",
            )
        self.api_key = api_key
        self.models: tuple[str, ...] = tuple(models or DEFAULT_MODELS["gemini"])
        self._client: Any = None

    @classmethod
    def from_env(cls) -> GeminiProvider:
        return cls(resolve_api_key("gemini"))

    def _get_client(self) -> Any:
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                from google import genai
            except ImportError as e:
                raise ConfigurationError(
                    "google-genai package not installed",
                    hint="pip install google-genai",
                ) from e
            self._client = genai.Client(api_key=self.api_key)
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
        return GEMINI_LIMITS.resolve(model, requested)

    def build_config(self, options: GenerationOptions, model: str) -> Any:
        """Build ``GenerateContentConfig`` from generation options."""
        from google.genai import types

        if not options.extended_thinking:
            budget = 0
        elif options.thinking_budget_tokens:
            budget = options.thinking_budget_tokens
        else:
            budget = _DYNAMIC_THINKING_BUDGET

        config_kwargs: dict[str, Any] = {
            "thinking_config": types.ThinkingConfig(thinking_budget=budget),
            "max_output_tokens": self.max_tokens_for(model, options.max_tokens),
        }
        if options.temperature is not None:
            config_kwargs["temperature"] = options.temperature
        if options.top_p is not None:
            config_kwargs["top_p"] = options.top_p
        if should_enable_web_search(options.enable_web_search):
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        return types.GenerateContentConfig(**config_kwargs)

    async def generate_response(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AIResponse:
        """Generate a non-streaming response."""
        msgs, opts = prepare_call(messages, options)
        model = opts.model or DEFAULT_MODEL
        try:
            client = self._get_client()
            response = await client.aio.models.generate_content(
                model=model,
                contents=format_contents(msgs, resolve_system_prompt(msgs, opts)),
                config=self.build_config(opts, model),
            )
        except Exception as e:
            raise wrap_provider_error(
                e, provider=self.name, model=model, fallback_code=GEMINI_ERROR
            ) from e

        return AIResponse(
            content=_response_text(response),
            model=model,
            provider=self.name,
            usage=_usage(response),
            stop_reason=_finish_reason(response),
        )

    async def generate_stream(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream text; the terminal chunk carries the last reported usage."""
        msgs, opts = prepare_call(messages, options)
        model = opts.model or DEFAULT_MODEL
        try:
            client = self._get_client()
            stream = await client.aio.models.generate_content_stream(
                model=model,
                contents=format_contents(msgs, resolve_system_prompt(msgs, opts)),
                config=self.build_config(opts, model),
            )
        except Exception as e:
            raise wrap_provider_error(
                e, provider=self.name, model=model, fallback_code=GEMINI_ERROR
            ) from e

        usage = Usage()
        finish_reason: str | None = None
        drained = False
        try:
            async for chunk in stream:
                if getattr(chunk, "usage_metadata", None) is not None:
                    usage = _usage(chunk)
                finish_reason = _finish_reason(chunk) or finish_reason
                text = _response_text(chunk)
                if text:
                    yield StreamChunk(content=text)
            drained = True
        except Exception as e:
            raise wrap_provider_error(
                e, provider=self.name, model=model, fallback_code=GEMINI_ERROR
            ) from e
        finally:
            if not drained:
                await close_stream(stream, provider=self.name)

        yield StreamChunk(
            content="",
            is_complete=True,
            usage=usage,
            is_truncated=finish_reason == "MAX_TOKENS",
            stop_reason=finish_reason,
        )

    async def aclose(self) -> None:
        """Release the client's async transport, when the SDK exposes one."""
        client = self._client
        if client is None:
            return
        self._client = None
        closer = getattr(getattr(client, "aio", None), "aclose", None)
        if callable(closer):
            result = closer()
            if inspect.isawaitable(result):
                await result


def format_contents(
    messages: Sequence[Message], system_prompt: str | None
) -> list[Any]:
    """Convert messages to Gemini ``Content`` objects.

    The system prompt is sent as a synthetic user/model exchange ahead of the
    conversation, and ``assistant`` maps to Gemini's ``model`` role.
    """
    from google.genai import types

    contents: list[Any] = []
    if system_prompt:
        contents.append(
            types.Content(role="user", parts=[types.Part.from_text(text=system_prompt)])
        )
        contents.append(
            types.Content(
                role="model",
                parts=[types.Part.from_text(text=SYSTEM_ACKNOWLEDGEMENT)],
            )
        )

    for message in conversation_turns(messages):
        role = "model" if message.role == "assistant" else "user"
        parts: list[Any] = []
        if message.content:
            parts.append(types.Part.from_text(text=message.content))
        for file in message.files:
            part = _attachment_part(file)
            if part is not None:
                parts.append(part)
        if parts:
            contents.append(types.Content(role=role, parts=parts))
    return contents


def _attachment_part(file: Attachment) -> Any:
    from google.genai import types

    if file.data:
        try:
            raw = base64.b64decode(file.data, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Skipping attachment %s: invalid base64 data", file.name)
        else:
            return types.Part(inline_data=types.Blob(data=raw, mime_type=file.type))
    if file.url:
        return types.Part(
            file_data=types.FileData(file_uri=file.url, mime_type=file.type)
        )
    text = document_text(file)
    if text:
        return types.Part.from_text(text=text)
    return None


def _response_text(response: Any) -> str:
    try:
        text = getattr(response, "text", None)
    except ValueError:
        # Blocked or non-text candidates make the accessor raise.
        return ""
    return text if isinstance(text, str) else ""


def _usage(response: Any) -> Usage:
    metadata = getattr(response, "usage_metadata", None)
    if metadata is None:
        return Usage()
    return Usage(
        prompt_tokens=getattr(metadata, "prompt_token_count", 0) or 0,
        completion_tokens=getattr(metadata, "candidates_token_count", 0) or 0,
    )


def _finish_reason(response: Any) -> str | None:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    reason = getattr(candidates[0], "finish_reason", None)
    if reason is None:
        return None
    name = getattr(reason, "name", None)
    return name if isinstance(name, str) else str(reason)
