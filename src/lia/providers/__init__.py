"""Provider implementations."""

from .anthropic import AnthropicProvider
from .base import Provider, ProviderCapabilities
from .gemini import GeminiProvider
from .mock import MockProvider
from .openai import OpenAIProvider
from .replicate import ReplicateProvider

#: Adapter classes by provider name.
PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "replicate": ReplicateProvider,
}

__all__ = [
    "PROVIDER_CLASSES",
    "AnthropicProvider",
    "GeminiProvider",
    "MockProvider",
    "OpenAIProvider",
    "Provider",
    "ProviderCapabilities",
    "ReplicateProvider",
]
