"""
Shared retry/backoff policy for every outbound provider call.

Transient failures (5xx, timeouts, dropped connections) are retried with a
capped exponential delay. Client errors are final: 404/410 become NotFound,
any other 4xx a non-retried ProviderUnavailable. Once attempts run out the
caller gets ProviderUnavailable, never a raw httpx exception.

Cancellation is not intercepted: asyncio.CancelledError propagates out of the
sleep or the request and no further attempt is made.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from config import settings
from errors import NotFound, ProviderUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NOT_FOUND_STATUS = {404, 410}


def backoff_delay(attempt: int, base_delay: float, max_delay: float = settings.max_delay) -> float:
    """Delay to wait after failed attempt number `attempt` (1-based)."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


async def execute(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = settings.search_attempts,
    base_delay: float = settings.base_delay,
    *,
    label: str = "",
    provider: str = "",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation` up to `max_attempts` times.

    `operation` is a zero-argument coroutine function; it is expected to call
    `response.raise_for_status()` so HTTP errors surface as HTTPStatusError.
    """
    max_attempts = max(1, int(max_attempts))
    last_exc: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in _NOT_FOUND_STATUS:
                raise NotFound(f"{label}: HTTP {status}", provider=provider) from e
            if status < 500:
                raise ProviderUnavailable(
                    f"{label}: HTTP {status}", provider=provider, attempts=attempt, cause=e
                ) from e
            last_exc = e
        except httpx.TransportError as e:
            # timeouts, connect errors, connection resets
            last_exc = e

        if attempt < max_attempts:
            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                "[%s] %s failed (attempt %d/%d): %s; retrying in %.1fs",
                provider or "retry", label, attempt, max_attempts, _describe(last_exc), delay,
            )
            await sleep(delay)

    logger.warning(
        "[%s] %s gave up after %d attempts: %s",
        provider or "retry", label, max_attempts, _describe(last_exc),
    )
    raise ProviderUnavailable(
        f"{label}: {_describe(last_exc)}", provider=provider, attempts=max_attempts, cause=last_exc
    ) from last_exc


def _describe(exc: Exception | None) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if exc is None:
        return "unknown error"
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
