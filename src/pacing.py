"""
Oracle Pacing for Mason

Serializes all prompt traffic from one agent through a single gate:
only one oracle request is ever in flight, and successive requests
start at least ``cooldown`` seconds apart.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class GateStats:
    """Counters for how the gate has been used."""
    requests: int = 0
    waits: int = 0
    total_wait_seconds: float = 0.0


class CooldownGate:
    """
    Per-agent request gate.

    The lock is held for the whole request, so the cooldown is a
    minimum interval between request starts on top of concurrency=1.
    """

    def __init__(
        self,
        cooldown: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.cooldown = cooldown
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_start = None
        self.stats = GateStats()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def remaining(self) -> float:
        """Seconds until the next request may start."""
        if self._last_request_start is None or self.cooldown <= 0:
            return 0.0
        elapsed = self._clock() - self._last_request_start
        return max(0.0, self.cooldown - elapsed)

    @asynccontextmanager
    async def slot(self):
        """Hold the gate for one request."""
        async with self._lock:
            wait = self.remaining()
            if wait > 0:
                logger.debug("Cooldown: waiting %.2fs before next request", wait)
                self.stats.waits += 1
                self.stats.total_wait_seconds += wait
                await self._sleep(wait)
            self._last_request_start = self._clock()
            self.stats.requests += 1
            yield
