"""Reusable retrying call for outbound HTTP.

One helper parameterized by attempt count, base delay and a predicate that
decides which failures are transient. Delay before attempt n+1 is
base_delay * 2 ** (n - 1), capped at max_delay.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


def is_transient_http_error(exc: BaseException) -> bool:
    """Network errors, timeouts, 429 and 5xx are retryable; other 4xx are not."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    max_delay: float = 5.0,
    is_retryable: Callable[[BaseException], bool] = is_transient_http_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation: str = "call",
) -> T:
    """Await fn() up to max_attempts times, backing off between transient failures.

    The last exception is re-raised unchanged when attempts run out or when
    is_retryable returns False for it.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= max_attempts or not is_retryable(exc):
                raise
            delay = min(max_delay, base_delay * 2 ** (attempt - 1))
            log.warning(
                "retrying_call",
                operation=operation,
                attempt=attempt,
                delay_seconds=delay,
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1
