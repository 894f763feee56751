"""Configuration: frozen provider and service settings resolved from the environment."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from types import MappingProxyType

from dotenv import load_dotenv

from lia.errors import ConfigurationError

load_dotenv()

#: Provider-specific credential environment variable names.
API_KEY_ENV_VARS: Mapping[str, str] = MappingProxyType(
    {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "replicate": "REPLICATE_API_TOKEN",
    }
)

DEFAULT_MODELS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "openai": ("gpt-5", "gpt-5-mini", "gpt-5-nano", "gpt-5-pro"),
        "anthropic": (
            "claude-sonnet-4-5-20250929",
            "claude-haiku-4-5-20251001",
            "claude-opus-4-1-20250805",
        ),
        "gemini": (
            "gemini-2.5-flash",
            "gemini-2.5-flash-lite",
            "gemini-1.5-pro",
            "gemini-1.5-flash",
        ),
        "replicate": (
            "openai/gpt-5",
            "openai/gpt-5-mini",
            "openai/gpt-5-nano",
            "anthropic/claude-4-sonnet",
            "deepseek-ai/deepseek-r1",
        ),
    }
)

DEFAULT_PROVIDER = "replicate"


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and model catalogue for one provider slot.

    Example:
        ProviderConfig(api_key="sk-...", models=("gpt-5",), default_model="gpt-5")
    """

    api_key: str | None = None
    models: tuple[str, ...] = ()
    default_model: str | None = None

    def __post_init__(self) -> None:
        """Normalize the key and validate the default model."""
        key = self.api_key.strip() if isinstance(self.api_key, str) else None
        object.__setattr__(self, "api_key", key or None)
        object.__setattr__(self, "models", tuple(self.models))

        if self.default_model is None and self.models:
            object.__setattr__(self, "default_model", self.models[0])
        if self.default_model is not None and not self.default_model.strip():
            raise ConfigurationError(
                "default_model must be a non-empty string",
                hint="Pass default_model='gpt-5' or omit it to use models[0].",
            )

    def __str__(self) -> str:
        """Return a redacted representation."""
        return (
            f"ProviderConfig(api_key={'[REDACTED]' if self.api_key else None}, "
            f"models={self.models!r}, default_model={self.default_model!r})"
        )

    __repr__ = __str__


@dataclass(frozen=True)
class ServiceConfig:
    """Immutable configuration for an ``AIService``.

    Providers without an ``api_key`` are skipped at service construction,
    except the slots named in ``mock_fallback`` which get a mock adapter so
    local and test environments keep working without real credentials.
    """

    default_provider: str = DEFAULT_PROVIDER
    providers: Mapping[str, ProviderConfig] = field(default_factory=dict)
    mock_fallback: frozenset[str] = frozenset({"replicate"})

    def __post_init__(self) -> None:
        """Freeze the provider mapping and validate the default provider."""
        if not isinstance(self.default_provider, str) or not self.default_provider:
            raise ConfigurationError(
                "default_provider must be a non-empty string",
                hint=f"Known providers: {', '.join(API_KEY_ENV_VARS)}",
            )
        for name, provider_config in self.providers.items():
            if not isinstance(provider_config, ProviderConfig):
                raise ConfigurationError(
                    f"Provider {name!r} must be configured with ProviderConfig",
                    hint="Pass providers={'openai': ProviderConfig(api_key=...)}.",
                )
        object.__setattr__(self, "providers", MappingProxyType(dict(self.providers)))
        object.__setattr__(self, "mock_fallback", frozenset(self.mock_fallback))

    @classmethod
    def from_env(
        cls,
        *,
        default_provider: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> ServiceConfig:
        """Resolve provider credentials from standard environment variables.

        Every provider whose key is present is configured, and the replicate
        slot is always configured so the mock fallback can take it over.
        """
        env = os.environ if environ is None else environ
        providers: dict[str, ProviderConfig] = {}
        for name, env_var in API_KEY_ENV_VARS.items():
            api_key = env.get(env_var)
            if not api_key and name != "replicate":
                continue
            providers[name] = ProviderConfig(
                api_key=api_key,
                models=DEFAULT_MODELS[name],
            )

        return cls(
            default_provider=default_provider
            or env.get("LIA_DEFAULT_PROVIDER")
            or DEFAULT_PROVIDER,
            providers=providers,
        )

    def provider_config(self, name: str) -> ProviderConfig | None:
        """Return the configuration for *name*, if configured."""
        return self.providers.get(name)


def resolve_api_key(provider: str) -> str:
    """Return the credential for *provider* from the environment.

    Raises:
        ConfigurationError: When the variable is unset or empty.
    """
    env_var = API_KEY_ENV_VARS.get(provider)
    if env_var is None:
        raise ConfigurationError(
            f"Unknown provider: {provider!r}",
            hint=f"Supported providers: {', '.join(API_KEY_ENV_VARS)}",
        )
    value = (os.environ.get(env_var) or "").strip()
    if not value:
        raise ConfigurationError(
            f"{env_var} environment variable is required",
            hint=f"Set {env_var} or pass api_key=... explicitly.",
        )
    return value
