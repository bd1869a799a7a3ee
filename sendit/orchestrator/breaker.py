"""
Per-platform circuit breaker for deployment submissions.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from ..errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Opens after `failure_threshold` consecutive transient failures.

    While open every call is refused. After `reset_timeout` seconds one trial
    call is let through (half-open); its success closes the circuit, its
    failure opens it again. A trial that never reports back frees the slot
    after `half_open_timeout` seconds.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        half_open_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_timeout = half_open_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_started: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.reset_timeout:
            return CircuitState.HALF_OPEN
        return self._state

    def retry_after(self) -> float:
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.reset_timeout - (self._clock() - self._opened_at))

    def check(self) -> None:
        """
        Admit one call or refuse it.

        Raises:
            CircuitOpenError: While the circuit is open or a trial is in flight
        """
        state = self.state
        if state == CircuitState.CLOSED:
            return
        now = self._clock()
        if state == CircuitState.HALF_OPEN:
            trial_free = self._trial_started is None or now - self._trial_started >= self.half_open_timeout
            if trial_free:
                self._state = CircuitState.HALF_OPEN
                self._trial_started = now
                logger.info(f"Circuit for {self.name} half-open, allowing a trial call")
                return
            raise CircuitOpenError(f"Circuit for {self.name} is half-open with a trial in flight", retry_after=0.0)
        wait = self.retry_after()
        raise CircuitOpenError(f"Circuit for {self.name} is open; retry in {wait:.0f}s", retry_after=wait)

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info(f"Circuit for {self.name} closed")
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._trial_started = None

    def record_failure(self) -> None:
        self._failures += 1
        if self._state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(f"Circuit for {self.name} opened after {self._failures} failures")
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            self._trial_started = None
