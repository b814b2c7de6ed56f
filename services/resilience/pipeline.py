"""
Resilience pipeline around a single upstream call.

Stages, outermost first::

    circuit breaker -> retry -> rate limiter -> attempt timeout -> call

The breaker sees one outcome per logical request, after retries are spent.
Every retried attempt takes its own rate limiter permit and its own timeout.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from config import Settings
from services.exceptions import UpstreamTimeoutError
from services.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from services.resilience.rate_limiter import RateLimiter, RateLimiterConfig
from services.resilience.retry import Retry, RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResiliencePipeline:
    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        retry: Retry,
        rate_limiter: RateLimiter,
        attempt_timeout: Optional[float] = None,
    ):
        self.circuit_breaker = circuit_breaker
        self.retry = retry
        self.rate_limiter = rate_limiter
        self.attempt_timeout = attempt_timeout

    async def _timed(self, func: Callable[[], Awaitable[T]]) -> T:
        if self.attempt_timeout is None:
            return await func()
        try:
            return await asyncio.wait_for(func(), timeout=self.attempt_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(
                f"Upstream call exceeded {self.attempt_timeout:g}s"
            ) from e

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        async def limited() -> T:
            return await self.rate_limiter.call(lambda: self._timed(func))

        return await self.circuit_breaker.call(lambda: self.retry.call(limited))


def build_pipeline(name: str, settings: Settings) -> ResiliencePipeline:
    """Create the breaker, retry and limiter for one upstream."""
    circuit_breaker = CircuitBreaker(
        name,
        CircuitBreakerConfig(
            sliding_window_size=settings.cb_sliding_window_size,
            minimum_number_of_calls=settings.cb_minimum_number_of_calls,
            failure_rate_threshold=settings.cb_failure_rate_threshold,
            slow_call_rate_threshold=settings.cb_slow_call_rate_threshold,
            slow_call_duration_threshold=settings.cb_slow_call_duration_seconds,
            wait_duration_in_open_state=settings.cb_wait_duration_seconds,
            permitted_calls_in_half_open_state=settings.cb_permitted_calls_in_half_open_state,
        ),
    )
    retry = Retry(
        name,
        RetryConfig(
            max_attempts=settings.max_retries,
            base_delay=settings.retry_delay_seconds,
        ),
    )
    rate_limiter = RateLimiter(
        name,
        RateLimiterConfig(
            limit_for_period=settings.rl_limit_for_period,
            refresh_period=settings.rl_refresh_seconds,
            timeout=settings.rl_timeout_seconds,
        ),
    )
    logger.info(f"Built resilience pipeline for '{name}'")
    return ResiliencePipeline(
        circuit_breaker,
        retry,
        rate_limiter,
        attempt_timeout=settings.timeout_seconds,
    )
