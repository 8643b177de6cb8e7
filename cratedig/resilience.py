"""Shared resilience helpers for transient API failures and payload guards."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from aiohttp import ClientConnectionError, ClientResponseError, ServerTimeoutError

from cratedig.exceptions import PayloadError

_T = TypeVar("_T")


def expect_dict(value: object, context: str) -> dict:
    if isinstance(value, dict):
        return value
    value_type = type(value).__name__
    raise PayloadError(f"{context} has unexpected type '{value_type}'")


def expect_list(value: object, context: str) -> list:
    if isinstance(value, list):
        return value
    value_type = type(value).__name__
    raise PayloadError(f"{context} has unexpected type '{value_type}'")


def optional_dict(container: dict, key: str, context: str) -> dict:
    value = container.get(key, {})
    if value is None:
        return {}
    return expect_dict(value, f"{context}.{key}")


def optional_list(container: dict, key: str, context: str) -> list:
    value = container.get(key, [])
    if value is None:
        return []
    return expect_list(value, f"{context}.{key}")


def optional_list_of_dicts(container: dict, key: str, context: str) -> list[dict]:
    values = optional_list(container, key, context)
    output: list[dict] = []
    for idx, value in enumerate(values):
        output.append(expect_dict(value, f"{context}.{key}[{idx}]"))
    return output


def optional_str(container: dict, key: str) -> str:
    value = container.get(key)
    return value if isinstance(value, str) else ""


def optional_int(container: dict, key: str) -> int:
    value = container.get(key)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def is_retryable_exception(exc: BaseException) -> bool:
    """Transport failures and 5xx are transient; 4xx and everything else are final."""
    if isinstance(exc, ClientResponseError):
        return exc.status >= 500
    return isinstance(exc, (asyncio.TimeoutError, ClientConnectionError, ServerTimeoutError))


async def run_with_retries(
    operation: Callable[[], Awaitable[_T]],
    *,
    delays: Sequence[float],
    before_attempt: Callable[[], Awaitable[object]] | None = None,
    on_retry: Callable[[int, int, float, Exception], None] | None = None,
) -> _T:
    """
    Run ``operation`` once, then once more per entry in ``delays`` while it keeps
    failing with a retryable error. ``before_attempt`` runs ahead of every attempt,
    including retries. The last error is re-raised when attempts run out.
    """
    max_attempts = len(delays) + 1
    for attempt in range(1, max_attempts + 1):
        if before_attempt is not None:
            await before_attempt()
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_attempts or not is_retryable_exception(exc):
                raise
            delay = delays[attempt - 1]
            if on_retry is not None:
                on_retry(attempt, max_attempts, delay, exc)
            await asyncio.sleep(delay)
    raise RuntimeError("Unreachable retry exit")
