"""AI service: provider initialization, strict routing and convenience helpers."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from typing import Any

import pytest

from lia import AIService, ProviderConfig, ServiceConfig
from lia.errors import ProviderNotAvailableError
from lia.providers import AnthropicProvider, MockProvider, ReplicateProvider
from lia.service import create_ai_service, create_message, infer_provider
from lia.types import AIResponse, StreamChunk, Usage
from tests.helpers import collect

pytestmark = pytest.mark.unit


class _RecordingAdapter:
    """Provider double that records every call it receives."""

    def __init__(self, name: str, *, models: tuple[str, ...] = ("m-1", "m-2")) -> None:
        self.name = name
        self.models = models
        self.calls: list[tuple[list[Any], Any]] = []
        self.closed = False

    async def generate_response(self, messages, options=None) -> AIResponse:
        self.calls.append((list(messages), options))
        return AIResponse(content=f"{self.name} says hi", model=options.model or "?", provider=self.name)

    async def generate_stream(self, messages, options=None):
        self.calls.append((list(messages), options))
        yield StreamChunk(content="x")
        yield StreamChunk(content="", is_complete=True, usage=Usage())

    async def aclose(self) -> None:
        self.closed = True


# =============================================================================
# Initialization
# =============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_without_credentials_replicate_falls_back_to_mock() -> None:
    service = create_ai_service(environ={})

    assert service.get_available_providers() == ["replicate"]
    assert isinstance(service.get_provider("replicate"), MockProvider)

    response = await service.generate_response([{"role": "user", "content": "Hi there!"}])

    assert response.provider == "replicate"
    assert response.model == "openai/gpt-5"
    assert response.content == (
        "Hello! I'm GPT-5, OpenAI's most advanced language model. How can I help you today?"
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_replicate_request_round_trips_through_service() -> None:
    replicate = ReplicateProvider("r8-test")
    runs: list[tuple[str, dict[str, Any]]] = []

    async def async_run(model: str, *, input: dict[str, Any]) -> list[str]:  # noqa: A002
        runs.append((model, input))
        return ["Hi ", "there!"]

    replicate._client = SimpleNamespace(async_run=async_run)
    service = AIService(
        ServiceConfig(providers={"replicate": ProviderConfig(api_key="r8-test")}),
        adapters={"replicate": replicate},
    )

    response = await service.generate_response(
        [{"role": "user", "content": "Hello"}],
        {"provider": "replicate", "model": "openai/gpt-5-mini"},
    )

    assert response.content == "Hi there!"
    assert response.provider == "replicate"
    assert response.model == "openai/gpt-5-mini"
    assert runs[0][1]["messages"] == [{"role": "user", "content": "Hello"}]


def test_configured_keys_build_real_adapters(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="lia.service"):
        service = create_ai_service(
            environ={"ANTHROPIC_API_KEY": "sk-ant", "REPLICATE_API_TOKEN": "r8"},
            default_provider="anthropic",
        )

    assert set(service.get_available_providers()) == {"anthropic", "replicate"}
    assert isinstance(service.get_provider("anthropic"), AnthropicProvider)
    assert not isinstance(service.get_provider("replicate"), MockProvider)
    assert service.config.default_provider == "anthropic"
    assert "Initialized anthropic provider" in caplog.text


def test_slot_without_key_is_skipped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    config = ServiceConfig(
        default_provider="openai",
        providers={"openai": ProviderConfig(api_key="  ", models=("gpt-5",))},
        mock_fallback=frozenset(),
    )

    with caplog.at_level(logging.WARNING, logger="lia.service"):
        service = AIService(config)

    assert service.get_available_providers() == []
    assert "Skipping openai provider" in caplog.text


def test_unknown_provider_slot_is_skipped() -> None:
    config = ServiceConfig(
        providers={"mistral": ProviderConfig(api_key="k")}, mock_fallback=frozenset()
    )
    assert AIService(config).get_available_providers() == []


def test_default_provider_comes_from_environment() -> None:
    service = create_ai_service(environ={"LIA_DEFAULT_PROVIDER": "gemini"})
    assert service.config.default_provider == "gemini"


# =============================================================================
# Routing
# =============================================================================


def _service(*names: str, default: str = "openai") -> tuple[AIService, dict[str, _RecordingAdapter]]:
    adapters = {name: _RecordingAdapter(name) for name in names}
    config = ServiceConfig(
        default_provider=default,
        providers={
            name: ProviderConfig(models=("m-1", "m-2"), default_model="m-2") for name in names
        },
        mock_fallback=frozenset(),
    )
    return AIService(config, adapters=adapters), adapters


@pytest.mark.asyncio
async def test_routes_to_explicit_then_option_then_default_provider() -> None:
    service, adapters = _service("openai", "gemini", "anthropic")

    await service.generate_response([{"role": "user", "content": "a"}], provider="gemini")
    await service.generate_response(
        [{"role": "user", "content": "b"}], {"provider": "anthropic"}
    )
    await service.generate_response([{"role": "user", "content": "c"}])

    assert len(adapters["gemini"].calls) == 1
    assert len(adapters["anthropic"].calls) == 1
    assert len(adapters["openai"].calls) == 1


@pytest.mark.asyncio
async def test_default_model_is_merged_only_when_missing() -> None:
    service, adapters = _service("openai")

    await service.generate_response([{"role": "user", "content": "a"}])
    await service.generate_response([{"role": "user", "content": "b"}], {"model": "m-1"})

    models = [options.model for _, options in adapters["openai"].calls]
    assert models == ["m-2", "m-1"]


@pytest.mark.asyncio
async def test_unavailable_provider_fails_without_fallback() -> None:
    service, adapters = _service("openai")

    with pytest.raises(ProviderNotAvailableError, match='Provider "anthropic" not available') as exc:
        await service.generate_response([{"role": "user", "content": "x"}], provider="anthropic")

    assert exc.value.provider == "anthropic"
    assert "openai" in (exc.value.hint or "")
    assert adapters["openai"].calls == []


def test_generate_stream_routes_before_iteration() -> None:
    service, _ = _service("openai")

    with pytest.raises(ProviderNotAvailableError):
        service.generate_stream([{"role": "user", "content": "x"}], provider="gemini")


@pytest.mark.asyncio
async def test_generate_stream_passes_through_adapter_chunks() -> None:
    service, adapters = _service("openai")

    chunks = await collect(service.generate_stream([{"role": "user", "content": "x"}]))

    assert [c.is_complete for c in chunks] == [False, True]
    assert adapters["openai"].calls[0][1].model == "m-2"


# =============================================================================
# Introspection and helpers
# =============================================================================


def test_introspection() -> None:
    service, adapters = _service("openai", "gemini")

    assert service.get_available_providers() == ["openai", "gemini"]
    assert service.get_available_models() == ["m-1", "m-2"]
    assert service.get_available_models("missing") == []
    assert service.is_provider_available("gemini")
    assert not service.is_provider_available("anthropic")
    assert service.get_provider("gemini") is adapters["gemini"]


@pytest.mark.asyncio
async def test_chat_appends_user_message_to_history() -> None:
    service, adapters = _service("openai")

    reply = await service.chat(
        "And now?",
        system_prompt="Be brief.",
        conversation_history=[
            {"role": "user", "content": "Before"},
            {"role": "assistant", "content": "Sure"},
        ],
        model="m-1",
    )

    messages, options = adapters["openai"].calls[0]
    assert reply == "openai says hi"
    assert [m.content for m in messages] == ["Before", "Sure", "And now?"]
    assert messages[-1].timestamp is not None
    assert options.system_prompt == "Be brief."
    assert options.model == "m-1"


@pytest.mark.asyncio
async def test_aclose_closes_adapters_and_logs_failures(caplog: pytest.LogCaptureFixture) -> None:
    service, adapters = _service("openai", "gemini")

    async def _boom() -> None:
        raise RuntimeError("transport already closed")

    adapters["gemini"].aclose = _boom  # type: ignore[method-assign]

    with caplog.at_level(logging.WARNING, logger="lia.service"):
        await service.aclose()

    assert adapters["openai"].closed
    assert "Failed to close gemini provider" in caplog.text


def test_create_message_is_timestamped_utc() -> None:
    message = create_message("assistant", "ok")
    assert message.role == "assistant"
    assert message.timestamp is not None
    assert message.timestamp.utcoffset() is not None


@pytest.mark.parametrize(
    ("model", "provider"),
    [
        ("anthropic/claude-4-sonnet", "replicate"),
        ("deepseek-ai/deepseek-r1", "replicate"),
        ("openai/gpt-5", "replicate"),
        ("claude-sonnet-4-5-20250929", "anthropic"),
        ("gemini-2.5-flash", "gemini"),
        ("gpt-5-mini", "openai"),
        ("something-new", "openai"),
    ],
)
def test_infer_provider(model: str, provider: str) -> None:
    assert infer_provider(model) == provider
