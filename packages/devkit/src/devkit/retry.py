from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


def exponential_backoff(base_delay_seconds: float = 1.0) -> Callable[[int], float]:
    """Delay for retry ``attempt`` (1-based): base * 2**attempt, so 2s, 4s, 8s with the default base."""

    def _delay(attempt: int) -> float:
        return base_delay_seconds * (2**attempt)

    return _delay


async def with_exponential_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    backoff: Callable[[int], float] | None = None,
    on_retry: Callable[[int, float, Exception], None] | None = None,
    sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` once, then retry it up to ``retries`` more times.

    The last exception is re-raised unchanged once the retries are spent.
    """
    delay_for = backoff or exponential_backoff()
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            attempt += 1
            if attempt > retries:
                raise
            delay = delay_for(attempt)
            if on_retry:
                on_retry(attempt, delay, exc)
            await sleep_fn(delay)
