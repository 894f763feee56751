"""Exception hierarchy for lia."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


class LiaError(Exception):
    """Base exception for all lia errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(LiaError):
    """Configuration validation or resolution failed.

    Raised for missing credentials at adapter construction and for malformed
    generation options.
    """


class FileValidationError(LiaError):
    """An uploaded file (or batch of files) violated a size, type or count limit."""

    def __init__(
        self,
        message: str,
        *,
        file_name: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.file_name = file_name


class ProviderNotAvailableError(LiaError):
    """The requested (or default) provider was never initialized."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider


class AIError(LiaError):
    """A vendor API call failed.

    ``code`` is ``HTTP_<status>`` when the vendor reported a status, otherwise
    a vendor-specific type string, otherwise ``UNKNOWN_ERROR``. ``details``
    keeps the original vendor exception for diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model: str | None = None,
        code: str = "UNKNOWN_ERROR",
        details: Any = None,
        status_code: int | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider
        self.model = model
        self.code = code
        self.details = details
        self.status_code = status_code


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
