"""Replicate provider: one adapter in front of many hosted model families.

Replicate exposes every model through a free-form ``input`` object whose
schema depends on the model. Each family gets its own ``InputStrategy``,
resolved once per model id.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import inspect
import logging
from typing import TYPE_CHECKING, Any, Protocol

from lia.config import DEFAULT_MODELS, resolve_api_key
from lia.errors import AIError, ConfigurationError
from lia.limits import REPLICATE_LIMITS
from lia.providers._errors import wrap_provider_error
from lia.providers._utils import (
    close_stream,
    conversation_turns,
    document_text,
    prepare_call,
    resolve_system_prompt,
)
from lia.providers.base import ProviderCapabilities
from lia.types import AIResponse, StreamChunk, Usage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from lia.types import GenerationOptions, Message, MessageInput, OptionsInput

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openai/gpt-5"
_DEFAULT_TEMPERATURE = 0.7
_DEFAULT_TOP_P = 1.0


class InputStrategy(Protocol):
    """Builds the model-specific ``input`` object for one model family."""

    family: str

    def build_input(
        self,
        messages: Sequence[Message],
        options: GenerationOptions,
        *,
        max_tokens: int,
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class ClaudeInput:
    """Anthropic models: single ``prompt`` string plus one optional image."""

    family: str = "claude"

    def build_input(
        self,
        messages: Sequence[Message],
        options: GenerationOptions,
        *,
        max_tokens: int,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "prompt": _transcript(messages),
            "max_tokens": max_tokens,
        }
        system = resolve_system_prompt(messages, options)
        if system:
            payload["system_prompt"] = system
        if options.max_image_resolution is not None:
            payload["max_image_resolution"] = options.max_image_resolution
        if options.extended_thinking:
            payload["extended_thinking"] = True
            if options.thinking_budget_tokens:
                payload["thinking_budget_tokens"] = options.thinking_budget_tokens
        images = _image_refs(messages)
        if images:
            payload["image"] = images[0]
        return payload


@dataclass(frozen=True)
class OpenAIInput:
    """OpenAI GPT-5 family: chat ``messages`` with reasoning knobs."""

    family: str = "openai"

    def build_input(
        self,
        messages: Sequence[Message],
        options: GenerationOptions,
        *,
        max_tokens: int,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "messages": _chat_messages(messages, system_prompt=None),
            "max_completion_tokens": max_tokens,
        }
        system = resolve_system_prompt(messages, options)
        if system:
            payload["system_prompt"] = system
        if options.reasoning_effort:
            payload["reasoning_effort"] = options.reasoning_effort
        if options.verbosity:
            payload["verbosity"] = options.verbosity
        images = _image_refs(messages)
        if images:
            payload["image_input"] = images
        return payload


@dataclass(frozen=True)
class GenericInput:
    """Everything else: a chat ``messages`` array and sampling parameters."""

    family: str = "generic"

    def build_input(
        self,
        messages: Sequence[Message],
        options: GenerationOptions,
        *,
        max_tokens: int,
    ) -> dict[str, Any]:
        return {
            "messages": _chat_messages(
                messages, system_prompt=resolve_system_prompt(messages, options)
            ),
            "temperature": (
                options.temperature
                if options.temperature is not None
                else _DEFAULT_TEMPERATURE
            ),
            "max_tokens": max_tokens,
            "top_p": options.top_p if options.top_p is not None else _DEFAULT_TOP_P,
        }


@lru_cache(maxsize=64)
def strategy_for(model: str) -> InputStrategy:
    """Return the input strategy for a Replicate model id."""
    lowered = model.lower()
    if "claude" in lowered:
        return ClaudeInput()
    if lowered.startswith("openai/"):
        return OpenAIInput()
    return GenericInput()


class ReplicateProvider:
    """Replicate predictions API provider."""

    name = "replicate"

    def __init__(self, api_token: str, *, models: Sequence[str] | None = None) -> None:
        """Initialize with an API token."""
        if not api_token:
            raise ConfigurationError(
                "REPLICATE_API_TOKEN environment variable is required",
                hint="Set REPLICATE_API_TOKEN or pass api_token=...",
            )
        self.api_token = api_token
        self.models: tuple[str, ...] = tuple(models or DEFAULT_MODELS["replicate"])
        self._client: Any = None

    @classmethod
    def from_env(cls) -> ReplicateProvider:
        return cls(resolve_api_key("replicate"))

    def _get_client(self) -> Any:
        """Lazily initialize and return the Replicate client."""
        if self._client is None:
            try:
                import replicate
            except ImportError as e:
                raise ConfigurationError(
                    "replicate package not installed",
                    hint="pip install replicate",
                ) from e
            self._client = replicate.Client(api_token=self.api_token)
        return self._client

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(
            vision=True,
            native_pdf=False,
            hosted_web_search=False,
            hosted_file_search=False,
            extended_thinking=True,
        )

    def max_tokens_for(self, model: str, requested: int | None = None) -> int:
        return REPLICATE_LIMITS.resolve(model, requested)

    def build_input(
        self, messages: Sequence[Message], options: GenerationOptions
    ) -> tuple[str, dict[str, Any]]:
        """Return ``(model, input)`` for a prediction."""
        model = options.model or DEFAULT_MODEL
        strategy = strategy_for(model)
        logger.debug("Replicate %s: using %s input strategy", model, strategy.family)
        payload = strategy.build_input(
            messages, options, max_tokens=self.max_tokens_for(model, options.max_tokens)
        )
        return model, payload

    async def generate_response(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AIResponse:
        """Run a prediction and join its output.

        Replicate reports no token counts, so usage is always zero.
        """
        msgs, opts = prepare_call(messages, options)
        model, payload = self.build_input(msgs, opts)
        try:
            output = await self._get_client().async_run(model, input=payload)
            content = await _join_output(output)
        except Exception as e:
            raise wrap_provider_error(e, provider=self.name, model=model) from e

        return AIResponse(content=content, model=model, provider=self.name, usage=Usage())

    async def generate_stream(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream ``output`` server-sent events as raw text deltas."""
        msgs, opts = prepare_call(messages, options)
        model, payload = self.build_input(msgs, opts)
        try:
            stream = self._get_client().async_stream(model, input=payload)
            if inspect.isawaitable(stream):
                stream = await stream
        except Exception as e:
            raise wrap_provider_error(e, provider=self.name, model=model) from e

        drained = False
        try:
            async for event in stream:
                kind = _event_kind(event)
                if kind == "output":
                    data = getattr(event, "data", None)
                    if data:
                        yield StreamChunk(content=str(data))
                elif kind == "error":
                    raise AIError(
                        str(getattr(event, "data", "") or "Replicate prediction failed"),
                        provider=self.name,
                        model=model,
                        details=event,
                    )
                elif kind == "done":
                    break
            drained = True
        except Exception as e:
            raise wrap_provider_error(e, provider=self.name, model=model) from e
        finally:
            if not drained:
                await close_stream(stream, provider=self.name)

        yield StreamChunk(content="", is_complete=True, usage=Usage(), is_truncated=False)

    async def aclose(self) -> None:
        self._client = None


def _event_kind(event: Any) -> str | None:
    kind = getattr(event, "event", None)
    kind = getattr(kind, "value", kind)
    return kind if isinstance(kind, str) else None


async def _join_output(output: Any) -> str:
    """Flatten a prediction output (string, list or token iterator) to text."""
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, (list, tuple)):
        return "".join(str(part) for part in output)
    if hasattr(output, "__aiter__"):
        return "".join([str(part) async for part in output])
    if hasattr(output, "__iter__"):
        return "".join(str(part) for part in output)
    return str(output)


def _transcript(messages: Sequence[Message]) -> str:
    """Render the conversation as one prompt string for single-prompt models."""
    turns = conversation_turns(messages)
    if len(turns) == 1 and turns[0].role == "user":
        return _with_documents(turns[0])
    lines = []
    for message in turns:
        speaker = "Assistant" if message.role == "assistant" else "User"
        lines.append(f"{speaker}: {_with_documents(message)}")
    return "\n\n".join(lines)


def _chat_messages(
    messages: Sequence[Message], *, system_prompt: str | None
) -> list[dict[str, str]]:
    formatted: list[dict[str, str]] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})
    for message in conversation_turns(messages):
        formatted.append({"role": message.role, "content": _with_documents(message)})
    return formatted


def _with_documents(message: Message) -> str:
    texts = [message.content] if message.content else []
    for file in message.files:
        text = document_text(file)
        if text:
            texts.append(text)
    return "\n\n".join(texts)


def _image_refs(messages: Sequence[Message]) -> list[str]:
    refs: list[str] = []
    for message in conversation_turns(messages):
        for file in message.files:
            if not file.is_image:
                continue
            ref = file.url or file.data_uri()
            if ref:
                refs.append(ref)
    return refs
