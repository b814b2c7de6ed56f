"""
Count-based circuit breaker.

CLOSED records the last ``sliding_window_size`` outcomes and opens once at
least ``minimum_number_of_calls`` are recorded and either the failure rate or
the slow-call rate reaches its threshold. OPEN rejects every call until
``wait_duration_in_open_state`` has elapsed, then moves to HALF_OPEN, which
lets ``permitted_calls_in_half_open_state`` probes through: one failure
reopens the circuit, all probes succeeding closes it.

Every state change starts a new generation. An outcome is only recorded
against the generation its call was admitted in, so a call that outlives a
transition never counts toward the window or the probes of the next state.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Deque, Optional, Tuple, Type, TypeVar

from services.exceptions import CircuitOpenError, UpstreamFaultError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    sliding_window_size: int = 10
    minimum_number_of_calls: int = 5
    failure_rate_threshold: float = 50.0
    slow_call_rate_threshold: float = 100.0
    slow_call_duration_threshold: float = 5.0
    wait_duration_in_open_state: float = 30.0
    permitted_calls_in_half_open_state: int = 3
    record_exceptions: Tuple[Type[BaseException], ...] = (UpstreamFaultError,)

    def __post_init__(self):
        if self.sliding_window_size < 1:
            raise ValueError("sliding_window_size must be at least 1")
        if self.minimum_number_of_calls < 1:
            raise ValueError("minimum_number_of_calls must be at least 1")
        if self.permitted_calls_in_half_open_state < 1:
            raise ValueError("permitted_calls_in_half_open_state must be at least 1")
        for name in ("failure_rate_threshold", "slow_call_rate_threshold"):
            value = getattr(self, name)
            if not 0 < value <= 100:
                raise ValueError(f"{name} must be in (0, 100], got {value}")


@dataclass(frozen=True)
class _Outcome:
    failed: bool
    slow: bool


@dataclass(frozen=True)
class Permission:
    """Result of asking the breaker for a call slot. Truthy when granted."""

    granted: bool
    state: CircuitState
    generation: int

    def __bool__(self) -> bool:
        return self.granted


@dataclass(frozen=True)
class CircuitBreakerMetrics:
    state: CircuitState
    buffered_calls: int
    failed_calls: int
    slow_calls: int
    failure_rate: float
    slow_call_rate: float


class CircuitBreaker:
    """One breaker per upstream; share the instance across all callers."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig = CircuitBreakerConfig(),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._outcomes: Deque[_Outcome] = deque(maxlen=config.sliding_window_size)
        self._opened_at = 0.0
        self._generation = 0
        # Half-open bookkeeping
        self._probes_in_flight = 0
        self._probe_outcomes: list = []

    # ── state ─────────────────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._advance_locked()
            return self._state

    def metrics(self) -> CircuitBreakerMetrics:
        with self._lock:
            self._advance_locked()
            state = self._state
            outcomes = list(self._outcomes)
        total = len(outcomes)
        failed = sum(1 for o in outcomes if o.failed)
        slow = sum(1 for o in outcomes if o.slow)
        return CircuitBreakerMetrics(
            state=state,
            buffered_calls=total,
            failed_calls=failed,
            slow_calls=slow,
            failure_rate=(failed * 100.0 / total) if total else 0.0,
            slow_call_rate=(slow * 100.0 / total) if total else 0.0,
        )

    def reset(self) -> None:
        with self._lock:
            self._transition_locked(CircuitState.CLOSED)

    def _advance_locked(self) -> None:
        if (
            self._state == CircuitState.OPEN
            and self._clock() - self._opened_at >= self.config.wait_duration_in_open_state
        ):
            self._transition_locked(CircuitState.HALF_OPEN)

    def _transition_locked(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._outcomes.clear()
        self._probes_in_flight = 0
        self._generation += 1
        self._probe_outcomes = []
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        if old_state != new_state:
            logger.warning(f"Circuit breaker '{self.name}' state changed: {old_state.value} -> {new_state.value}")

    # ── permission & recording ────────────────────────────────────────

    def try_acquire_permission(self) -> Permission:
        with self._lock:
            self._advance_locked()
            state = self._state
            if state == CircuitState.CLOSED:
                granted = True
            elif state == CircuitState.OPEN:
                granted = False
            elif self._probes_in_flight + len(self._probe_outcomes) >= self.config.permitted_calls_in_half_open_state:
                granted = False
            else:
                self._probes_in_flight += 1
                granted = True
            return Permission(granted=granted, state=state, generation=self._generation)

    def release_permission(self, permission: Optional[Permission] = None) -> None:
        """Give back a half-open probe slot for a call whose outcome is ignored."""
        with self._lock:
            if not self._current_locked(permission):
                return
            if self._state == CircuitState.HALF_OPEN and self._probes_in_flight > 0:
                self._probes_in_flight -= 1

    def on_success(self, duration: float, permission: Optional[Permission] = None) -> None:
        logger.debug(f"Circuit breaker '{self.name}' recorded success")
        self._record(_Outcome(failed=False, slow=duration > self.config.slow_call_duration_threshold), permission)

    def on_error(self, duration: float, error: BaseException, permission: Optional[Permission] = None) -> None:
        logger.error(f"Circuit breaker '{self.name}' recorded error: {error}")
        self._record(_Outcome(failed=True, slow=duration > self.config.slow_call_duration_threshold), permission)

    def _current_locked(self, permission: Optional[Permission]) -> bool:
        return permission is None or permission.generation == self._generation

    def _record(self, outcome: _Outcome, permission: Optional[Permission] = None) -> None:
        with self._lock:
            if not self._current_locked(permission):
                # Admitted before the last state change; its outcome no longer applies
                logger.debug(f"Circuit breaker '{self.name}' dropped outcome of a call admitted in {permission.state.value}")
                return
            if self._state == CircuitState.HALF_OPEN:
                self._record_probe_locked(outcome)
            elif self._state == CircuitState.CLOSED:
                self._outcomes.append(outcome)
                if self._thresholds_exceeded_locked(list(self._outcomes)):
                    self._transition_locked(CircuitState.OPEN)

    def _record_probe_locked(self, outcome: _Outcome) -> None:
        if self._probes_in_flight > 0:
            self._probes_in_flight -= 1
        if outcome.failed:
            self._transition_locked(CircuitState.OPEN)
            return
        self._probe_outcomes.append(outcome)
        if len(self._probe_outcomes) >= self.config.permitted_calls_in_half_open_state:
            slow = sum(1 for o in self._probe_outcomes if o.slow)
            slow_rate = slow * 100.0 / len(self._probe_outcomes)
            if slow_rate >= self.config.slow_call_rate_threshold:
                self._transition_locked(CircuitState.OPEN)
            else:
                self._transition_locked(CircuitState.CLOSED)

    def _thresholds_exceeded_locked(self, outcomes: list) -> bool:
        total = len(outcomes)
        minimum = min(self.config.minimum_number_of_calls, self.config.sliding_window_size)
        if total < minimum:
            return False
        failure_rate = sum(1 for o in outcomes if o.failed) * 100.0 / total
        slow_call_rate = sum(1 for o in outcomes if o.slow) * 100.0 / total
        return (
            failure_rate >= self.config.failure_rate_threshold
            or slow_call_rate >= self.config.slow_call_rate_threshold
        )

    # ── decorated call ────────────────────────────────────────────────

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        permission = self.try_acquire_permission()
        if not permission:
            raise CircuitOpenError(self.name, permission.state.value)

        start = self._clock()
        try:
            result = await func()
        except self.config.record_exceptions as e:
            self.on_error(self._clock() - start, e, permission)
            raise
        except BaseException:
            self.release_permission(permission)
            raise
        self.on_success(self._clock() - start, permission)
        return result
