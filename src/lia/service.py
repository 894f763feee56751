"""AI service: routes generation calls to configured provider adapters.

Routing is strict. A call names a provider (or uses the configured default)
and fails with ``ProviderNotAvailableError`` when that provider was not
initialized; there is no cross-provider fallback.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import TYPE_CHECKING

from lia.config import ServiceConfig
from lia.errors import LiaError, ProviderNotAvailableError
from lia.providers import PROVIDER_CLASSES, MockProvider
from lia.types import Message, coerce_messages, coerce_options

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence

    from lia.providers.base import Provider
    from lia.types import (
        AIResponse,
        GenerationOptions,
        MessageInput,
        OptionsInput,
        Role,
        StreamChunk,
    )

logger = logging.getLogger(__name__)

# Vendor-prefixed ids are Replicate model references.
_REPLICATE_PREFIXES = ("anthropic/", "deepseek-ai/", "openai/")


class AIService:
    """Registry of provider adapters with strict routing.

    Example:
        service = AIService(ServiceConfig.from_env())
        reply = await service.chat("Hello", provider="anthropic")
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        *,
        adapters: Mapping[str, Provider] | None = None,
    ) -> None:
        self.config = config if config is not None else ServiceConfig.from_env()
        self._providers: dict[str, Provider] = dict(adapters or {})
        self._initialize_providers()

    def _initialize_providers(self) -> None:
        slots = list(self.config.providers)
        slots.extend(sorted(self.config.mock_fallback - set(slots)))

        for name in slots:
            if name in self._providers:
                continue
            provider_config = self.config.provider_config(name)
            api_key = provider_config.api_key if provider_config else None
            models = provider_config.models if provider_config else ()

            if not api_key:
                if name in self.config.mock_fallback:
                    logger.warning(
                        "No credential for %s; using the mock provider", name
                    )
                    self._providers[name] = MockProvider(name=name, models=models or None)
                else:
                    logger.warning("Skipping %s provider: no credential configured", name)
                continue

            provider_cls = PROVIDER_CLASSES.get(name)
            if provider_cls is None:
                logger.warning("Skipping unknown provider %r", name)
                continue
            try:
                self._providers[name] = provider_cls(api_key, models=models or None)
            except LiaError as e:
                logger.warning("Failed to initialize %s provider: %s", name, e)
                continue
            logger.info("Initialized %s provider", name)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _route(
        self, options: OptionsInput, provider: str | None
    ) -> tuple[Provider, GenerationOptions]:
        opts = coerce_options(options)
        name = provider or opts.provider or self.config.default_provider
        adapter = self._providers.get(name)
        if adapter is None:
            available = ", ".join(self._providers) or "none"
            raise ProviderNotAvailableError(
                f'Provider "{name}" not available',
                provider=name,
                hint=f"Available providers: {available}",
            )

        if opts.model is None:
            provider_config = self.config.provider_config(name)
            if provider_config is not None and provider_config.default_model:
                opts = opts.with_updates(model=provider_config.default_model)
        return adapter, opts

    async def generate_response(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
        *,
        provider: str | None = None,
    ) -> AIResponse:
        """Generate a complete response from the selected provider."""
        adapter, opts = self._route(options, provider)
        return await adapter.generate_response(coerce_messages(messages), opts)

    def generate_stream(
        self,
        messages: Sequence[MessageInput],
        options: OptionsInput = None,
        *,
        provider: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from the selected provider.

        Routing happens here, before iteration starts, so an unavailable
        provider raises at call time.
        """
        adapter, opts = self._route(options, provider)
        return adapter.generate_stream(coerce_messages(messages), opts)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_available_providers(self) -> list[str]:
        return list(self._providers)

    def get_available_models(self, provider: str | None = None) -> list[str]:
        adapter = self._providers.get(provider or self.config.default_provider)
        return list(adapter.models) if adapter is not None else []

    def is_provider_available(self, provider: str) -> bool:
        return provider in self._providers

    def get_provider(self, provider: str) -> Provider | None:
        return self._providers.get(provider)

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    async def chat(
        self,
        user_message: str,
        *,
        system_prompt: str | None = None,
        conversation_history: Sequence[MessageInput] | None = None,
        provider: str | None = None,
        model: str | None = None,
    ) -> str:
        """Send one user message (after optional history) and return the text."""
        messages = [*coerce_messages(conversation_history or ()), create_message("user", user_message)]
        response = await self.generate_response(
            messages,
            coerce_options(None, system_prompt=system_prompt, model=model),
            provider=provider,
        )
        return response.content

    async def aclose(self) -> None:
        """Close every adapter that holds client resources."""
        for name, adapter in self._providers.items():
            closer = getattr(adapter, "aclose", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.warning("Failed to close %s provider: %s", name, e)


def create_message(role: Role, content: str) -> Message:
    """Build a timestamped message."""
    return Message(role=role, content=content, timestamp=datetime.now(timezone.utc))


def infer_provider(model: str) -> str:
    """Map a model id to the provider that serves it.

    Vendor-prefixed ids (``anthropic/...``, ``deepseek-ai/...``) are Replicate
    references; bare Claude ids go to Anthropic; unknown ids default to OpenAI.
    """
    if model.startswith(_REPLICATE_PREFIXES):
        return "replicate"
    if "claude" in model:
        return "anthropic"
    if model.startswith("gemini-"):
        return "gemini"
    return "openai"


def create_ai_service(
    *, default_provider: str | None = None, environ: Mapping[str, str] | None = None
) -> AIService:
    """Build an ``AIService`` from environment credentials."""
    return AIService(
        ServiceConfig.from_env(default_provider=default_provider, environ=environ)
    )
