"""Shared utilities for provider implementations."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any

from lia.types import coerce_messages, coerce_options

if TYPE_CHECKING:
    from collections.abc import Sequence

    from lia.types import (
        Attachment,
        GenerationOptions,
        Message,
        MessageInput,
        OptionsInput,
    )

logger = logging.getLogger(__name__)


def prepare_call(
    messages: Sequence[MessageInput], options: OptionsInput
) -> tuple[list[Message], GenerationOptions]:
    """Validate adapter inputs into models."""
    return coerce_messages(messages), coerce_options(options)


def resolve_system_prompt(
    messages: Sequence[Message], options: GenerationOptions
) -> str | None:
    """Return the explicit system prompt, else the joined ``system`` messages."""
    if options.system_prompt:
        return options.system_prompt
    inline = [m.content for m in messages if m.role == "system" and m.content]
    return "\n\n".join(inline) if inline else None


def conversation_turns(messages: Sequence[Message]) -> list[Message]:
    """Drop ``system`` messages; adapters carry the system prompt separately."""
    return [m for m in messages if m.role != "system"]


def has_documents(messages: Sequence[Message]) -> bool:
    """Whether any message carries a non-image attachment."""
    return any(f.is_document for m in messages for f in m.files)


def document_text(file: Attachment) -> str | None:
    """Render extracted document text the way it is shown to text-only models."""
    if not file.extracted_text:
        return None
    return f"Document: {file.name}\n\nExtracted Content:\n{file.extracted_text}"


async def close_stream(stream: Any, *, provider: str) -> None:
    """Release a vendor stream's HTTP response.

    Called when a consumer abandons iteration early. Cleanup never masks the
    primary outcome, so failures are logged rather than raised.
    """
    closer = getattr(stream, "aclose", None) or getattr(stream, "close", None)
    if not callable(closer):
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.warning("%s stream cleanup failed: %s", provider, exc)
