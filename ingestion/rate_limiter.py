"""
Request spacing for the remote event API.

The limiter owns the only clock state of the fetch path: when the last
request started and the earliest time the next one may start. Two inputs
move that time forward: the minimum inter-request delay, applied after every
request start, and server-directed cooldowns (HTTP 429), applied through
``defer``. Whichever lands later wins, so a cooldown is never shortened by
the throttle and the throttle still applies once the cooldown ends.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Maintains the minimum interval between request starts and honours cooldowns"""

    def __init__(
        self,
        min_interval: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._last_request_start: Optional[float] = None
        self._next_allowed: Optional[float] = None

    @property
    def last_request_start(self) -> Optional[float]:
        return self._last_request_start

    @property
    def next_allowed(self) -> Optional[float]:
        return self._next_allowed

    def time_until_allowed(self) -> float:
        """Seconds left before the next request may start (0 if none)"""
        if self._next_allowed is None:
            return 0.0
        return max(0.0, self._next_allowed - self._clock())

    async def acquire(self) -> float:
        """
        Wait until a request may start, then record its start.

        Returns:
            The recorded start time.
        """
        wait = self.time_until_allowed()
        if wait > 0:
            logger.debug(f"Throttling next request for {wait:.3f}s")
            await self._sleep(wait)

        start = self._clock()
        self._last_request_start = start
        spacing_deadline = start + self.min_interval
        if self._next_allowed is None or spacing_deadline > self._next_allowed:
            self._next_allowed = spacing_deadline
        return start

    def defer(self, seconds: float) -> None:
        """Hold off the next request until at least ``seconds`` from now"""
        deadline = self._clock() + max(0.0, float(seconds))
        if self._next_allowed is None or deadline > self._next_allowed:
            self._next_allowed = deadline


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 16.0) -> float:
    """Exponential backoff for the ``attempt``-th consecutive failure (1-based)"""
    exponent = max(0, attempt - 1)
    if exponent >= 32:
        return cap
    return min(base * (2 ** exponent), cap)
