"""
Client-side view of an upstream API's rate-limit window.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitState:
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[float] = None  # epoch seconds


class RateLimiter:
    """
    Tracks quota reported by one upstream API.

    State only ever comes from the most recent response. Calls are refused
    locally while the quota is exhausted and the reset time lies in the
    future; once the reset time passes calls are allowed again and the
    next response corrects the state.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._state = RateLimitState()

    @property
    def state(self) -> RateLimitState:
        with self._lock:
            return RateLimitState(self._state.limit, self._state.remaining, self._state.reset_at)

    def can_call(self) -> bool:
        with self._lock:
            if self._state.remaining != 0 or self._state.reset_at is None:
                return True
            return self._clock() >= self._state.reset_at

    def record_response(self, limit: Optional[int], remaining: Optional[int], reset_at: Optional[float]) -> None:
        with self._lock:
            self._state = RateLimitState(limit=limit, remaining=remaining, reset_at=reset_at)
        if remaining == 0:
            logger.warning(f"Rate limit exhausted ({limit} calls), resets at {reset_at}")

    def record_headers(self, headers: Mapping[str, str]) -> bool:
        """
        Update state from x-ratelimit-* response headers.

        Returns:
            True if the headers carried rate-limit information
        """
        if headers.get("x-ratelimit-remaining") is None:
            return False
        try:
            limit = headers.get("x-ratelimit-limit")
            reset = headers.get("x-ratelimit-reset")
            self.record_response(
                limit=int(limit) if limit is not None else None,
                remaining=int(headers["x-ratelimit-remaining"]),
                reset_at=float(reset) if reset is not None else None,
            )
        except ValueError:
            logger.debug(f"Ignoring malformed rate-limit headers: {dict(headers)}")
            return False
        return True

    def time_until_reset(self) -> float:
        """Seconds until the window resets; 0 when unknown or already past."""
        with self._lock:
            reset_at = self._state.reset_at
        if reset_at is None:
            return 0.0
        return max(0.0, reset_at - self._clock())
