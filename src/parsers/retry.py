"""Bounded retry with pluggable backoff and a cancellable wait.

The wait is injected so tests can run the whole schedule instantly and record
the delays; in production it is ``wait_or_stop`` bound to the shutdown event.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

# Returns True when the wait was interrupted by shutdown
WaitFn = Callable[[float], Awaitable[bool]]


def quadratic_backoff(attempt: int) -> float:
    """1s, 4s, 9s, ..."""
    return float(attempt * attempt)


async def wait_or_stop(stop: asyncio.Event | None, delay: float) -> bool:
    """Sleep ``delay`` seconds unless ``stop`` fires first. Returns True if stopped."""
    if stop is None:
        await asyncio.sleep(delay)
        return False
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except TimeoutError:
        return False
    return True


@dataclass
class RetryResult(Generic[T]):
    value: T | None = None
    attempts: int = 0
    last_error: Exception | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.last_error is None and not self.cancelled


async def run_with_retry(
    operation: Callable[[int], Awaitable[T]],
    *,
    max_attempts: int,
    wait: WaitFn,
    backoff: Callable[[int], float] = quadratic_backoff,
    on_error: Callable[[int, Exception], Awaitable[None]] | None = None,
) -> RetryResult[T]:
    """Call ``operation(attempt)`` until it succeeds or ``max_attempts`` are spent.

    Attempts are strictly sequential. After a failed attempt that is not the
    last, waits ``backoff(attempt)``; if the wait is interrupted the result is
    returned with ``cancelled=True`` and no further attempts are made.
    """
    max_attempts = max(1, max_attempts)
    result: RetryResult[T] = RetryResult()
    for attempt in range(1, max_attempts + 1):
        result.attempts = attempt
        try:
            result.value = await operation(attempt)
        except Exception as e:
            result.last_error = e
            if on_error is not None:
                await on_error(attempt, e)
            if attempt < max_attempts and await wait(backoff(attempt)):
                result.cancelled = True
                return result
            continue
        result.last_error = None
        return result
    return result
