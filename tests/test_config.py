"""Configuration boundary tests."""

from __future__ import annotations

import pytest

from lia.config import (
    DEFAULT_MODELS,
    ProviderConfig,
    ServiceConfig,
    resolve_api_key,
)
from lia.errors import ConfigurationError

pytestmark = pytest.mark.unit


def test_provider_config_defaults_model_to_first_in_catalogue() -> None:
    cfg = ProviderConfig(api_key="sk-test", models=["gpt-5", "gpt-5-mini"])
    assert cfg.models == ("gpt-5", "gpt-5-mini")
    assert cfg.default_model == "gpt-5"


def test_provider_config_blank_key_normalizes_to_none() -> None:
    assert ProviderConfig(api_key="   ").api_key is None


def test_provider_config_rejects_blank_default_model() -> None:
    with pytest.raises(ConfigurationError, match="default_model"):
        ProviderConfig(models=("gpt-5",), default_model="  ")


def test_provider_config_repr_redacts_api_key() -> None:
    cfg = ProviderConfig(api_key="sk-secret-value", models=("gpt-5",))
    assert "sk-secret-value" not in repr(cfg)
    assert "[REDACTED]" in str(cfg)


def test_service_config_freezes_provider_mapping() -> None:
    providers = {"openai": ProviderConfig(api_key="k", models=("gpt-5",))}
    cfg = ServiceConfig(default_provider="openai", providers=providers)

    providers["gemini"] = ProviderConfig(api_key="g")

    assert "gemini" not in cfg.providers
    with pytest.raises(TypeError):
        cfg.providers["anthropic"] = ProviderConfig()  # type: ignore[index]


def test_service_config_rejects_non_provider_config_values() -> None:
    with pytest.raises(ConfigurationError, match="ProviderConfig"):
        ServiceConfig(providers={"openai": {"api_key": "k"}})  # type: ignore[dict-item]


def test_service_config_rejects_empty_default_provider() -> None:
    with pytest.raises(ConfigurationError):
        ServiceConfig(default_provider="")


def test_from_env_configures_present_credentials_and_replicate_slot() -> None:
    cfg = ServiceConfig.from_env(environ={"ANTHROPIC_API_KEY": "ak"})

    assert set(cfg.providers) == {"anthropic", "replicate"}
    assert cfg.providers["anthropic"].api_key == "ak"
    assert cfg.providers["anthropic"].models == DEFAULT_MODELS["anthropic"]
    assert cfg.providers["replicate"].api_key is None
    assert cfg.providers["replicate"].default_model == "openai/gpt-5"
    assert cfg.default_provider == "replicate"


def test_from_env_default_provider_precedence() -> None:
    env = {"LIA_DEFAULT_PROVIDER": "gemini"}
    assert ServiceConfig.from_env(environ=env).default_provider == "gemini"
    assert (
        ServiceConfig.from_env(default_provider="openai", environ=env).default_provider
        == "openai"
    )


def test_from_env_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    cfg = ServiceConfig.from_env()

    assert cfg.providers["openai"].api_key == "env-key"
    assert cfg.providers["openai"].default_model == "gpt-5"


def test_resolve_api_key_reads_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "  g-key ")
    assert resolve_api_key("gemini") == "g-key"


def test_resolve_api_key_missing_raises_clear_error() -> None:
    with pytest.raises(
        ConfigurationError, match="REPLICATE_API_TOKEN environment variable is required"
    ) as exc:
        resolve_api_key("replicate")
    assert exc.value.hint is not None
    assert "REPLICATE_API_TOKEN" in exc.value.hint


def test_resolve_api_key_unknown_provider() -> None:
    with pytest.raises(ConfigurationError, match="Unknown provider"):
        resolve_api_key("cohere")
