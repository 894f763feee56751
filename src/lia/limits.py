"""Per-provider output token ceilings and clamping.

Tables are data, loaded once and never mutated. Adapters clamp caller
requests to the model ceiling instead of letting the vendor reject them, so
the value actually sent can be lower than the one requested.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from types import MappingProxyType

logger = logging.getLogger(__name__)

#: What adapters request when the caller does not ask for anything.
DEFAULT_MAX_TOKENS = 8192


@dataclass(frozen=True)
class TokenLimits:
    """Output-token ceilings for one provider."""

    provider: str
    ceilings: Mapping[str, int]
    default_ceiling: int
    default_request: int = DEFAULT_MAX_TOKENS

    def ceiling_for(self, model: str) -> int:
        return self.ceilings.get(model, self.default_ceiling)

    def resolve(self, model: str, requested: int | None) -> int:
        """Return the ``max_tokens`` value to send for *model*."""
        ceiling = self.ceiling_for(model)
        if requested is None:
            return min(self.default_request, ceiling)
        if requested > ceiling:
            logger.debug(
                "Clamping %s max_tokens for %s from %d to %d",
                self.provider,
                model,
                requested,
                ceiling,
            )
            return ceiling
        return requested


def _table(entries: dict[str, int]) -> Mapping[str, int]:
    return MappingProxyType(dict(entries))


ANTHROPIC_LIMITS = TokenLimits(
    provider="anthropic",
    ceilings=_table(
        {
            "claude-sonnet-4-5-20250929": 64000,
            "claude-sonnet-4.5": 64000,
            "claude-sonnet-4-5": 64000,
            "claude-sonnet-4": 64000,
            "claude-haiku-4-5-20251001": 64000,
            "claude-haiku-4.5": 64000,
            "claude-haiku-4-5": 64000,
            "claude-haiku-3.5": 8192,
            "claude-opus-4-1-20250805": 32000,
            "claude-opus-4.1": 32000,
            "claude-opus-4-1": 32000,
            "claude-opus-4": 32000,
            "claude-opus-3": 4096,
        }
    ),
    default_ceiling=64000,
)

OPENAI_LIMITS = TokenLimits(
    provider="openai",
    ceilings=_table(
        {
            "gpt-5": 128000,
            "gpt-5-mini": 128000,
            "gpt-5-nano": 128000,
            "gpt-5-pro": 272000,
        }
    ),
    default_ceiling=128000,
)

GEMINI_LIMITS = TokenLimits(
    provider="gemini",
    ceilings=_table(
        {
            "gemini-2.5-pro": 65536,
            "gemini-2.5-flash": 65536,
            "gemini-2.5-flash-lite": 65536,
            "gemini-1.5-pro": 8192,
            "gemini-1.5-flash": 8192,
        }
    ),
    default_ceiling=8192,
)

REPLICATE_LIMITS = TokenLimits(
    provider="replicate",
    ceilings=_table(
        {
            "openai/gpt-5": 128000,
            "openai/gpt-5-mini": 128000,
            "openai/gpt-5-nano": 128000,
            "anthropic/claude-4-sonnet": 64000,
            "anthropic/claude-4.5-sonnet": 64000,
            "deepseek-ai/deepseek-r1": 20480,
        }
    ),
    default_ceiling=8192,
)

LIMITS_BY_PROVIDER: Mapping[str, TokenLimits] = MappingProxyType(
    {
        "anthropic": ANTHROPIC_LIMITS,
        "openai": OPENAI_LIMITS,
        "gemini": GEMINI_LIMITS,
        "replicate": REPLICATE_LIMITS,
    }
)

# Output budgets the chat front end asks for: conservative in normal mode,
# larger for models that can sustain extended reasoning.
_NORMAL_BUDGETS = _table(
    {
        "claude-sonnet-4-5-20250929": 16384,
        "claude-sonnet-4.5": 16384,
        "claude-sonnet-4-5": 16384,
        "claude-sonnet-4": 16384,
        "claude-haiku-4-5-20251001": 8192,
        "claude-haiku-4.5": 8192,
        "claude-haiku-4-5": 8192,
        "claude-haiku-3.5": 8192,
        "claude-opus-4-1-20250805": 16384,
        "claude-opus-4.1": 16384,
        "claude-opus-4-1": 16384,
        "claude-opus-4": 16384,
        "claude-opus-3": 8192,
        "gpt-5-pro": 16384,
        "gpt-5": 8192,
        "gpt-5-mini": 8192,
        "gpt-5-nano": 8192,
    }
)
_EXTENDED_BUDGETS = _table(
    {
        "claude-sonnet-4-5-20250929": 32768,
        "claude-sonnet-4.5": 32768,
        "claude-sonnet-4-5": 32768,
        "claude-sonnet-4": 32768,
        "claude-haiku-4-5-20251001": 8192,
        "claude-haiku-4.5": 8192,
        "claude-haiku-4-5": 8192,
        "claude-haiku-3.5": 8192,
        "claude-opus-4-1-20250805": 32000,
        "claude-opus-4.1": 32000,
        "claude-opus-4-1": 32000,
        "claude-opus-4": 32000,
        "claude-opus-3": 8192,
        "gpt-5-pro": 32768,
        "gpt-5": 8192,
        "gpt-5-mini": 8192,
        "gpt-5-nano": 8192,
    }
)
_DEFAULT_NORMAL_BUDGET = 8192
_DEFAULT_EXTENDED_BUDGET = 32768
# Headroom for the visible answer on top of the thinking budget.
_THINKING_ANSWER_HEADROOM = 2048


def recommended_max_tokens(
    model: str,
    *,
    extended_thinking: bool = False,
    thinking_budget_tokens: int | None = None,
) -> int:
    """Return the output budget the chat front end requests for *model*.

    Normal mode uses a conservative per-model value. Extended-thinking mode
    asks for at least 32k (or budget + headroom, if larger) and is then capped
    to the model's extended limit.
    """
    if not extended_thinking:
        return _NORMAL_BUDGETS.get(model, _DEFAULT_NORMAL_BUDGET)

    model_limit = _EXTENDED_BUDGETS.get(model, _DEFAULT_EXTENDED_BUDGET)
    requested = (thinking_budget_tokens or 1024) + _THINKING_ANSWER_HEADROOM
    return min(max(requested, _DEFAULT_EXTENDED_BUDGET), model_limit)
