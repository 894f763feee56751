"""Normalized request/response shapes shared by every provider adapter."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from lia.errors import ConfigurationError

Role = Literal["user", "assistant", "system"]
ReasoningEffort = Literal["minimal", "low", "medium", "high"]
Verbosity = Literal["low", "medium", "high"]


class Attachment(BaseModel):
    """A file attached to a message.

    Exactly one of ``data``/``url``/``extracted_text`` is authoritative for a
    given adapter: vision-capable adapters prefer ``data`` or ``url``, text-only
    paths need ``extracted_text``.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    name: str
    type: str = "application/octet-stream"
    size: int | None = None
    #: Base64-encoded content, without a ``data:`` prefix.
    data: str | None = None
    url: str | None = None
    extracted_text: str | None = None
    processing_method: str | None = None
    error: str | None = None

    @property
    def is_image(self) -> bool:
        return self.type.startswith("image/")

    @property
    def is_pdf(self) -> bool:
        return self.type == "application/pdf"

    @property
    def is_document(self) -> bool:
        """Non-image attachments count as documents for tool inference."""
        return not self.is_image

    def data_uri(self) -> str | None:
        """Return ``data:<mime>;base64,<data>`` when inline data is present."""
        if not self.data:
            return None
        return f"data:{self.type};base64,{self.data}"


class Message(BaseModel):
    """One conversation turn. Immutable once sent."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    role: Role
    content: str = ""
    timestamp: datetime | None = None
    files: tuple[Attachment, ...] = ()


class GenerationOptions(BaseModel):
    """Configuration bag for a generation call.

    Keys that a given adapter does not understand are ignored by that adapter;
    unknown keys are dropped here rather than rejected.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    system_prompt: str | None = None
    #: Anthropic-only (Replicate forwards it to Claude models).
    extended_thinking: bool = False
    thinking_budget_tokens: int | None = Field(default=None, gt=0)
    #: ``None`` means "not specified"; web search defaults to on.
    enable_web_search: bool | None = None
    enable_file_search: bool | None = None
    reasoning_effort: ReasoningEffort | None = None
    #: OpenAI-only.
    verbosity: Verbosity | None = None
    max_image_resolution: float | None = Field(default=None, gt=0.0, le=1.0)
    #: Consumed by the service router, ignored by adapters.
    provider: str | None = None

    def with_updates(self, **updates: Any) -> GenerationOptions:
        """Return a copy with *updates* applied."""
        return self.model_copy(update=updates)


@dataclass(frozen=True)
class Usage:
    """Token accounting. ``total_tokens`` is always the sum of the parts."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "prompt_tokens", int(self.prompt_tokens or 0))
        object.__setattr__(self, "completion_tokens", int(self.completion_tokens or 0))
        object.__setattr__(
            self, "total_tokens", self.prompt_tokens + self.completion_tokens
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class StreamChunk:
    """One element of a generation stream.

    Non-terminal chunks carry incremental text. The single terminal chunk has
    ``is_complete=True``, empty content and the authoritative usage.
    """

    content: str
    is_complete: bool = False
    usage: Usage | None = None
    is_truncated: bool | None = None
    stop_reason: str | None = None


@dataclass(frozen=True)
class AIResponse:
    """A complete, non-streamed generation result."""

    content: str
    model: str
    provider: str
    usage: Usage = field(default_factory=Usage)
    stop_reason: str | None = None


class FunctionSpec(TypedDict, total=False):
    name: str
    description: str
    parameters: dict[str, Any]


class CustomSpec(TypedDict):
    name: str
    description: str


class FunctionToolDefinition(TypedDict):
    type: Literal["function"]
    function: FunctionSpec


class CustomToolDefinition(TypedDict):
    type: Literal["custom"]
    custom: CustomSpec


class HostedToolDefinition(TypedDict):
    type: str


ToolDefinition = FunctionToolDefinition | CustomToolDefinition | HostedToolDefinition

MessageInput = Message | Mapping[str, Any]
OptionsInput = GenerationOptions | Mapping[str, Any] | None


def coerce_messages(messages: Iterable[MessageInput]) -> list[Message]:
    """Validate wire-shaped message dicts into ``Message`` models."""
    result: list[Message] = []
    for idx, item in enumerate(messages):
        if isinstance(item, Message):
            result.append(item)
            continue
        try:
            result.append(Message.model_validate(item))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid message at index {idx}: {e.errors()[0]['msg']}",
                hint="Each message needs {'role': 'user'|'assistant'|'system', 'content': str}.",
            ) from e
    return result


def coerce_options(options: OptionsInput = None, **overrides: Any) -> GenerationOptions:
    """Validate an options mapping into ``GenerationOptions``.

    ``overrides`` with a ``None`` value are ignored so callers can forward
    optional keyword arguments unchanged.
    """
    updates = {k: v for k, v in overrides.items() if v is not None}
    if isinstance(options, GenerationOptions):
        if not updates:
            return options
        payload: dict[str, Any] = options.model_dump()
    else:
        payload = dict(options or {})
    payload.update(updates)
    try:
        return GenerationOptions.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid generation option {loc!r}: {first['msg']}",
            hint="See GenerationOptions for accepted keys and ranges.",
        ) from e
