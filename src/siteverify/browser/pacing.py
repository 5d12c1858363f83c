"""Human-pacing delays between interaction steps and between targets."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class HumanPacer:
    """Suspends the caller for a bounded random duration.

    Args:
        rng: Random source (``random.Random`` compatible). Defaults to the
            module-level generator.
        sleep: Coroutine function used to suspend, ``asyncio.sleep`` by default.
    """

    def __init__(self, rng: random.Random | None = None, sleep: SleepFn | None = None) -> None:
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    def pick_delay_ms(self, min_ms: int, max_ms: int) -> int:
        """Return a uniform random delay in ``[min_ms, max_ms)``.

        Raises:
            ValueError: If either bound is negative or ``min_ms > max_ms``.
        """
        if min_ms < 0 or max_ms < 0:
            raise ValueError(f"delay bounds must be non-negative, got [{min_ms}, {max_ms})")
        if min_ms > max_ms:
            raise ValueError(f"min_ms ({min_ms}) must not exceed max_ms ({max_ms})")
        if min_ms == max_ms:
            return min_ms
        return int(self._rng.random() * (max_ms - min_ms) + min_ms)

    async def wait(self, min_ms: int, max_ms: int) -> int:
        """Sleep for a random duration in ``[min_ms, max_ms)``.

        Returns:
            The delay actually slept, in milliseconds.
        """
        delay = self.pick_delay_ms(min_ms, max_ms)
        logger.debug("Waiting for %dms", delay)
        if delay:
            await self._sleep(delay / 1000)
        return delay
