"""
Fixed-window token bucket.

``limit_for_period`` permits become available at the start of every
``refresh_period``. When the current window is drained a caller reserves a
permit from an upcoming window and sleeps until it opens, as long as that
wait fits in ``timeout``; otherwise it is rejected with ``RateLimitedError``.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from services.exceptions import RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimiterConfig:
    limit_for_period: int = 100
    refresh_period: float = 60.0
    timeout: float = 5.0

    def __post_init__(self):
        if self.limit_for_period < 1:
            raise ValueError("limit_for_period must be at least 1")
        if self.refresh_period <= 0:
            raise ValueError("refresh_period must be positive")
        if self.timeout < 0:
            raise ValueError("timeout must not be negative")


class RateLimiter:
    def __init__(
        self,
        name: str,
        config: RateLimiterConfig = RateLimiterConfig(),
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._window_start = clock()
        # Goes negative while permits from upcoming windows are reserved
        self._permits = config.limit_for_period

    @property
    def available_permits(self) -> int:
        with self._lock:
            self._refresh_locked(self._clock())
            return max(self._permits, 0)

    def _refresh_locked(self, now: float) -> None:
        elapsed = now - self._window_start
        if elapsed < self.config.refresh_period:
            return
        windows = int(elapsed // self.config.refresh_period)
        self._window_start += windows * self.config.refresh_period
        self._permits = min(
            self.config.limit_for_period,
            self._permits + windows * self.config.limit_for_period,
        )

    def reserve(self) -> Optional[float]:
        """Reserve a permit; return the seconds to wait for it, or None if rejected."""
        with self._lock:
            now = self._clock()
            self._refresh_locked(now)
            if self._permits > 0:
                self._permits -= 1
                return 0.0

            windows_ahead = (-self._permits) // self.config.limit_for_period + 1
            wait = self._window_start + windows_ahead * self.config.refresh_period - now
            if wait > self.config.timeout:
                return None
            self._permits -= 1
            return wait

    def _cancel_reservation(self) -> None:
        with self._lock:
            self._refresh_locked(self._clock())
            self._permits = min(self._permits + 1, self.config.limit_for_period)

    async def acquire(self) -> None:
        wait = self.reserve()
        if wait is None:
            logger.warning(f"Rate limiter '{self.name}' rejected call")
            raise RateLimitedError(self.name, self.config.timeout)
        if wait > 0:
            logger.debug(f"Rate limiter '{self.name}' waiting {wait:.3f}s for a permit")
            try:
                await self._sleep(wait)
            except asyncio.CancelledError:
                self._cancel_reservation()
                raise
        else:
            logger.debug(f"Rate limiter '{self.name}' allowed call")

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        await self.acquire()
        return await func()
