"""Minimum-spacing throttle for outbound LLM API requests."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

from loguru import logger


class RequestThrottler:
    """Enforce a minimum interval between the starts of outbound requests.

    A single instance is shared by every caller that talks to the same API
    key. ``acquire`` suspends only the awaiting task; the timestamp update is
    done under a lock so concurrent callers never compute the same baseline.
    """

    def __init__(
        self,
        min_interval: float = 15.0,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = float(min_interval)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

    @property
    def last_request_at(self) -> Optional[float]:
        """Timestamp of the most recent request start (None until the first)."""
        return self._last_request_at

    def time_until_available(self) -> float:
        if self._last_request_at is None:
            return 0.0
        elapsed = self._clock() - self._last_request_at
        return max(0.0, self.min_interval - elapsed)

    async def acquire(self) -> None:
        """Wait for a free slot, then record a new request start."""
        async with self._lock:
            wait = self.time_until_available()
            if wait > 0:
                logger.debug(f"Rate limiting: waiting {wait:.1f}s before next request")
                await self._sleep(wait)
            self._last_request_at = self._clock()

    def touch(self) -> None:
        """Record a request completion; never moves the timestamp backwards."""
        now = self._clock()
        if self._last_request_at is None or now > self._last_request_at:
            self._last_request_at = now
