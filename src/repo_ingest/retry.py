"""Retry an awaitable operation with exponential backoff."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from repo_ingest.exceptions import RetryExhaustedError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tenacity import RetryCallState

    SleepFn = Callable[[float], Awaitable[None]]
    RetryHook = Callable[[int, Exception, float], None]

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    sleep: SleepFn = asyncio.sleep,
    on_retry: RetryHook | None = None,
) -> T:
    """Await `operation` until it succeeds or the attempt ceiling is reached.

    The pause before retry `n` (1-based) is `base_delay * 2**(n - 1)`.
    Exceptions outside `retry_on` propagate immediately.

    Args:
        operation: zero-argument factory returning a fresh awaitable per attempt
        attempts: attempt ceiling, at least 1
        base_delay: first backoff delay in seconds, doubled per retry
        retry_on: exception types considered transient
        sleep: coroutine used to wait between attempts
        on_retry: called with (attempt number, error, upcoming delay) before each pause

    Raises:
        ValueError: if `attempts` is lower than 1
        RetryExhaustedError: once every attempt failed, wrapping the last error

    Returns:
        The first successful result.
    """
    if attempts < 1:
        msg = f"attempts must be >= 1, got {attempts}"
        raise ValueError(msg)

    def before_sleep(state: RetryCallState) -> None:
        if on_retry is None or state.outcome is None or state.next_action is None:
            return
        on_retry(state.attempt_number, state.outcome.exception(), state.next_action.sleep)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay),
        retry=retry_if_exception_type(retry_on),
        sleep=sleep,
        before_sleep=before_sleep,
    )
    try:
        return await retrying(operation)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        raise RetryExhaustedError(attempts=attempts, last_error=last_error) from last_error
