"""Retry with exponential backoff for async operations."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, last_exception: BaseException, attempts: int) -> None:
        self.last_exception = last_exception
        self.attempts = attempts
        super().__init__(f"Failed after {attempts} attempts. Last error: {last_exception}")


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    label: str | None = None,
    **kwargs: Any,
) -> T:
    """Await ``func`` until it succeeds or ``config.max_attempts`` run out.

    Only exceptions listed in ``config.retry_on`` are retried; anything else
    propagates on the first failure. ``label`` names the operation in log
    events and defaults to the function's name.
    """
    config = config or RetryConfig()
    if config.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    label = label or getattr(func, "__name__", repr(func))

    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except config.retry_on as e:
            attempt += 1
            if attempt >= config.max_attempts:
                logger.error("Giving up", target=label, attempts=attempt, error=str(e))
                raise RetryError(e, attempt) from e
            delay = config.delay(attempt - 1)
            logger.warning(
                "Attempt failed, retrying",
                target=label,
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay=round(delay, 2),
                error=str(e),
            )
            await asyncio.sleep(delay)
