"""Shared provider-side error helpers.

Every vendor failure leaves an adapter as an ``AIError`` with a stable
``code`` so callers can branch without brittle substring matching.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from lia.config import API_KEY_ENV_VARS
from lia.errors import AIError, _walk_exception_chain

UNKNOWN_ERROR = "UNKNOWN_ERROR"
PLATFORM_TIMEOUT = "PLATFORM_TIMEOUT"

_TIMEOUT_MARKERS = ("etimedout", "socket hang up", "timed out", "timeout")


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def extract_vendor_error(exc: BaseException) -> tuple[str | None, str | None]:
    """Return ``(type, message)`` from a vendor error body, if any.

    Anthropic and OpenAI SDK errors carry the parsed JSON body shaped like::

        {"type": "error", "error": {"type": "overloaded_error", "message": "..."}}
    """
    body: Any = getattr(exc, "body", None)
    if not isinstance(body, dict):
        return None, None
    error: Any = body.get("error", body)
    if not isinstance(error, dict):
        return None, None
    err_type = error.get("type")
    message = error.get("message")
    return (
        err_type if isinstance(err_type, str) and err_type else None,
        message if isinstance(message, str) and message else None,
    )


def is_timeout_error(exc: BaseException) -> bool:
    """Whether *exc* looks like a socket/transport timeout."""
    for e in _walk_exception_chain(exc):
        if isinstance(e, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
            return True
        if type(e).__name__ == "APITimeoutError":
            return True
        text = str(e).lower()
        if any(marker in text for marker in _TIMEOUT_MARKERS):
            return True
    return False


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    model: str | None,
    fallback_code: str = UNKNOWN_ERROR,
    message: str | None = None,
    hint: str | None = None,
) -> AIError:
    """Map a vendor SDK exception into ``AIError``.

    ``code`` precedence: ``HTTP_<status>``, then a vendor type string (body
    error type, then a string ``code`` attribute), then *fallback_code*.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, AIError):
        if exc.model is None:
            exc.model = model
        if hint is not None and exc.hint is None:
            exc.hint = hint
        return exc

    status_code = extract_status_code(exc)
    vendor_type, vendor_message = extract_vendor_error(exc)

    code = fallback_code
    if status_code is not None:
        code = f"HTTP_{status_code}"
    elif vendor_type is not None:
        code = vendor_type
    else:
        raw_code = getattr(exc, "code", None)
        if isinstance(raw_code, str) and raw_code:
            code = raw_code

    text = message or vendor_message or str(exc) or f"Unknown {provider} API error"
    return AIError(
        text,
        provider=provider,
        model=model,
        code=code,
        details=exc,
        status_code=status_code,
        hint=hint if hint is not None else _auth_hint(provider, status_code),
    )


def _auth_hint(provider: str, status_code: int | None) -> str | None:
    """Name the credential variable for auth failures."""
    if status_code not in {401, 403}:
        return None
    env_var = API_KEY_ENV_VARS.get(provider, "the provider API key")
    return f"Check credentials/permissions (try setting {env_var})."
