"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: vendor SDK clients are replaced with
these fakes so request shapes can be asserted without network access.
"""

from __future__ import annotations

from collections.abc import Iterable
from types import SimpleNamespace
from typing import Any


class FakeStream:
    """Async-iterable vendor stream that records whether it was closed."""

    def __init__(self, events: Iterable[Any], *, fail_with: BaseException | None = None):
        self._events = list(events)
        self._fail_with = fail_with
        self.closed = False

    def __aiter__(self) -> FakeStream:
        return self

    async def __anext__(self) -> Any:
        if self._events:
            return self._events.pop(0)
        if self._fail_with is not None:
            exc, self._fail_with = self._fail_with, None
            raise exc
        raise StopAsyncIteration

    async def close(self) -> None:
        self.closed = True


class RecordingCreate:
    """Stand-in for ``client.<resource>.create`` that captures kwargs."""

    def __init__(self, result: Any = None, *, error: BaseException | None = None):
        self.result = result
        self.error = error
        self.calls: list[dict[str, Any]] = []

    @property
    def last_kwargs(self) -> dict[str, Any]:
        assert self.calls, "create() was never called"
        return self.calls[-1]

    async def __call__(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def ns(**kwargs: Any) -> SimpleNamespace:
    """Shorthand for attribute-style fake SDK objects."""
    return SimpleNamespace(**kwargs)


class FakeVendorError(Exception):
    """Exception shaped like an SDK ``APIStatusError``."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        self.body = body
        if code is not None:
            self.code = code


async def collect(stream: Any) -> list[Any]:
    return [chunk async for chunk in stream]
