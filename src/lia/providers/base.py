"""Provider protocol: minimal interface every vendor adapter implements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from lia.types import AIResponse, MessageInput, OptionsInput, StreamChunk


@dataclass(frozen=True)
class ProviderCapabilities:
    """Feature flags exposed by providers."""

    vision: bool
    native_pdf: bool = False
    hosted_web_search: bool = False
    hosted_file_search: bool = False
    extended_thinking: bool = False


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: one-shot and streamed generation."""

    name: str
    models: tuple[str, ...]

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Feature capabilities of this adapter."""
        ...

    async def generate_response(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AIResponse:
        """Generate a complete response."""
        ...

    def generate_stream(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response as incremental chunks ending in one terminal chunk."""
        ...

    def max_tokens_for(self, model: str, requested: int | None = None) -> int:
        """Return the output-token value actually sent for *model*."""
        ...
