"""Bounded retry with backoff for page fetches."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from observability.prometheus_metrics import fetch_retries
from .fetcher import FetchError

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], Awaitable[str]]


class RetryExhaustedError(FetchError):
    """Every attempt at fetching a URL failed."""

    def __init__(self, url: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(url, f"Giving up on {url} after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def calculate_retry_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff for the wait after failed ``attempt`` (1-based)."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


async def fetch_with_retries(fetch: FetchFn, url: str,
                             max_attempts: int = 3,
                             backoff_base: float = 0.5,
                             max_backoff: float = 8.0) -> str:
    """Call ``fetch(url)`` up to ``max_attempts`` times.

    Only :class:`FetchError` is retried; anything else propagates at once.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Optional[FetchError] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await fetch(url)
        except FetchError as e:
            last_error = e
            if attempt >= max_attempts:
                break
            delay = calculate_retry_delay(attempt, backoff_base, max_backoff)
            logger.warning(
                f"Fetch failed for {url}: {e}; retrying in {delay:.2f}s "
                f"(attempt {attempt}/{max_attempts})"
            )
            fetch_retries.inc()
            await asyncio.sleep(delay)

    raise RetryExhaustedError(url, max_attempts, last_error) from last_error
