"""Serialized request queue for third-party reverse-geocoding calls."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar


T = TypeVar("T")


class RequestQueue:
    """Run submitted requests strictly one at a time with a minimum spacing.

    Politeness towards public providers (Nominatim allows ~1 req/s), not a
    throughput optimization. Spacing is measured between request starts.
    """

    def __init__(
        self,
        min_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval_seconds = max(0.0, min_interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_started: Optional[float] = None
        self.completed = 0

    async def submit(self, request: Callable[[], Awaitable[T]]) -> T:
        """Wait for the queue, honour the spacing, then run ``request()``."""
        async with self._lock:
            if self._last_started is not None:
                wait = self.min_interval_seconds - (self._clock() - self._last_started)
                if wait > 0:
                    await self._sleep(wait)
            self._last_started = self._clock()
            try:
                return await request()
            finally:
                self.completed += 1
