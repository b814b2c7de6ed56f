"""Bounded retry with exponential backoff."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from services.exceptions import UpstreamFaultError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    retry_exceptions: Tuple[Type[BaseException], ...] = (UpstreamFaultError,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")


def backoff_delay(attempt: int, base_delay: float, multiplier: float = 2.0) -> float:
    """Seconds to wait before ``attempt`` (1-based). The first attempt never waits.

    With a 0.5s base: attempt 2 -> 0.5s, attempt 3 -> 1.0s, attempt 4 -> 2.0s.
    """
    if attempt < 2:
        return 0.0
    return base_delay * multiplier ** (attempt - 2)


class Retry:
    def __init__(
        self,
        name: str,
        config: RetryConfig = RetryConfig(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self.config = config
        self._sleep = sleep

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await func()
            except self.config.retry_exceptions as e:
                if attempt >= self.config.max_attempts:
                    logger.error(f"'{self.name}' failed after {attempt} attempts: {e}")
                    raise
                attempt += 1
                delay = backoff_delay(attempt, self.config.base_delay, self.config.multiplier)
                logger.warning(
                    f"Retry attempt {attempt}/{self.config.max_attempts} for '{self.name}' in {delay:.2f}s: {e}"
                )
                await self._sleep(delay)
