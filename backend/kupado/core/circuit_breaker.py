"""
Circuit breaker for the generation providers.

A provider that keeps failing is short-circuited for ``open_duration_seconds``
instead of letting every request wait for its timeout:
- CLOSED: calls pass; outcomes are recorded in a sliding time window
- OPEN: calls are rejected with CircuitBreakerOpenError
- HALF_OPEN: a single trial call is let through; its outcome closes or reopens
"""
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from kupado.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when a call is rejected without reaching the provider."""


class CircuitBreaker:
    """Failure-rate circuit breaker for async callables."""

    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        time_window_seconds: float = 60.0,
        open_duration_seconds: float = 30.0,
        min_requests_for_threshold: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.time_window_seconds = time_window_seconds
        self.open_duration_seconds = open_duration_seconds
        self.min_requests_for_threshold = min_requests_for_threshold
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._history: Deque[Tuple[float, bool]] = deque()
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.open_duration_seconds
        ):
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            logger.info("circuit_breaker_half_open", circuit_breaker=self.name)
        return self._state

    def _trim_history(self, now: float) -> None:
        cutoff = now - self.time_window_seconds
        while self._history and self._history[0][0] < cutoff:
            self._history.popleft()

    def _open(self, now: float, **fields: Any) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._trial_in_flight = False
        self._history.clear()
        logger.warning("circuit_breaker_opened", circuit_breaker=self.name, **fields)

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        now = self._clock()
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            self._opened_at = None
            self._trial_in_flight = False
            self._history.clear()
            logger.info("circuit_breaker_closed", circuit_breaker=self.name)
            return
        self._history.append((now, True))
        self._trim_history(now)

    def record_failure(self) -> None:
        now = self._clock()
        if self._state == CircuitState.HALF_OPEN:
            self._open(now, reason="trial_failed")
            return

        self._history.append((now, False))
        self._trim_history(now)

        total = len(self._history)
        if total < self.min_requests_for_threshold:
            return
        failures = sum(1 for _, ok in self._history if not ok)
        error_rate = failures / total
        if error_rate >= self.failure_threshold:
            self._open(now, error_rate=error_rate, failures=failures, total=total)

    async def call_async(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await ``func`` under breaker protection.

        Raises:
            CircuitBreakerOpenError: circuit is open, or a half-open trial is
                already in flight.
        """
        if not self.allow_request():
            raise CircuitBreakerOpenError(f"Circuit breaker {self.name} is {self._state.value}")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        except BaseException:
            # Cancelled mid-call: a half-open trial must not stay in flight
            if self._state == CircuitState.HALF_OPEN:
                self._open(self._clock(), reason="trial_cancelled")
            raise
        self.record_success()
        return result

    def get_metrics(self) -> dict:
        state = self.state
        now = self._clock()
        self._trim_history(now)
        failures = sum(1 for _, ok in self._history if not ok)
        total = len(self._history)
        return {
            "name": self.name,
            "state": state.value,
            "recent_requests": total,
            "recent_failures": failures,
            "error_rate": failures / total if total else 0.0,
            "opened_at": self._opened_at,
        }
