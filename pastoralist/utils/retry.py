"""Exponential-backoff retry for async operations.

    stdout = await retry(run_gh, retries=3, factor=2, min_timeout=1000)

Timeouts are milliseconds. After ``retries`` additional attempts the
original exception is re-raised with ``attempt_number`` and
``retries_left`` attributes attached, so callers can tell "ran out of
retries" apart from other failures.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

DEFAULT_RETRIES = 3
DEFAULT_FACTOR = 2
DEFAULT_MIN_TIMEOUT = 1000
DEFAULT_MAX_TIMEOUT = 30000

Callback = Callable[[BaseException], Any]


def calculate_delay(attempt_number: int, factor: float, min_timeout: float, max_timeout: float) -> float:
    """Delay in milliseconds before retrying after ``attempt_number`` failed."""
    return min(min_timeout * factor ** (attempt_number - 1), max_timeout)


def _tag(error: BaseException, attempt_number: int, retries_left: int) -> BaseException:
    error.attempt_number = attempt_number
    error.retries_left = max(0, retries_left)
    return error


async def _call(callback: Callback | None, error: BaseException) -> None:
    if callback is None:
        return
    outcome = callback(error)
    if inspect.isawaitable(outcome):
        await outcome


async def retry(
    fn: Callable[[], Awaitable[T]],
    retries: int = DEFAULT_RETRIES,
    factor: float = DEFAULT_FACTOR,
    min_timeout: float = DEFAULT_MIN_TIMEOUT,
    max_timeout: float = DEFAULT_MAX_TIMEOUT,
    on_failed_attempt: Callback | None = None,
    on_retry: Callback | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Call ``fn`` until it succeeds or ``retries + 1`` attempts have failed.

    Args:
        fn: Zero-argument coroutine function
        retries: Additional attempts after the first
        factor: Backoff multiplier
        min_timeout: First delay in milliseconds
        max_timeout: Cap on any single delay in milliseconds
        on_failed_attempt: Called with the tagged error after each failure that
            will be retried. Raising from it aborts retrying.
        on_retry: Called after ``on_failed_attempt``, right before sleeping
        sleep: Awaitable sleep taking seconds, injectable for tests

    Returns:
        Whatever ``fn`` returns on its first successful attempt
    """
    attempt_number = 0

    while True:
        attempt_number += 1
        try:
            return await fn()
        except Exception as error:
            retries_left = retries - attempt_number
            _tag(error, attempt_number, retries_left)

            if retries_left < 0:
                raise

            await _call(on_failed_attempt, error)
            await _call(on_retry, error)

            delay = calculate_delay(attempt_number, factor, min_timeout, max_timeout)
            await sleep(delay / 1000)
