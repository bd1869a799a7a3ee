"""
Exponential backoff schedule and cooperative cancellation.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List

from ..config import PollSettings, RetrySettings

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    initial_delay: float
    multiplier: float
    max_delay: float

    def delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        return min(self.initial_delay * self.multiplier ** attempt, self.max_delay)

    def delays(self, count: int) -> List[float]:
        return [self.delay(n) for n in range(count)]

    @classmethod
    def for_retries(cls, settings: RetrySettings) -> "BackoffPolicy":
        return cls(settings.initial_delay, settings.multiplier, settings.max_delay)

    @classmethod
    def for_polling(cls, settings: PollSettings) -> "BackoffPolicy":
        return cls(settings.initial_delay, settings.multiplier, settings.max_delay)


class CancelToken:
    """A one-way cancellation flag that sleeping coroutines can wait on."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


async def sleep_or_cancel(delay: float, token: CancelToken, sleep: Sleep = asyncio.sleep) -> bool:
    """
    Sleep for `delay` seconds unless the token fires first.

    Returns:
        True if the token was canceled (before or during the sleep)
    """
    if token.is_canceled:
        return True
    sleeper = asyncio.ensure_future(sleep(delay))
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
    return token.is_canceled
