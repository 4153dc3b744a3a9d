"""
Provides a randomized throttle that spaces out requests to the remote service.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

log = logging.getLogger(__name__)


class RandomThrottle:
    """
    Sleeps a random interval between consecutive requests.

    The randomized spacing is an acceptable-use policy towards the remote
    service. On a 429 the interval bounds are doubled (up to a cap), and they
    recover slowly after successful waits.
    """

    MAX_BACKOFF = 8.0

    def __init__(
        self,
        delay_range: tuple[float, float],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        Initializes the throttle.

        Args:
            delay_range: Lower and upper bound of the delay, in seconds.
            sleep: Coroutine used to wait, injectable for tests.
            rng: Random source, injectable for tests.
        """
        low, high = delay_range
        if low < 0 or high <= 0 or high < low:
            raise ValueError(f"Invalid delay range: {delay_range}")
        self._low = low
        self._high = high
        self._backoff = 1.0
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def backoff(self) -> float:
        return self._backoff

    def next_delay(self) -> float:
        """Draws the next delay, in seconds, including any rate-limit backoff."""
        return self._rng.uniform(self._low, self._high) * self._backoff

    def on_429(self) -> None:
        """Called when the remote answers 429. Doubles the delay bounds."""
        self._backoff = min(self.MAX_BACKOFF, self._backoff * 2)
        log.warning(
            f"[yellow]Rate limit hit. Request spacing now x{self._backoff:.0f}."
            "[/yellow]"
        )

    async def wait(self) -> None:
        """Waits a randomized interval before the next request."""
        delay = self.next_delay()
        await self._sleep(delay)
        if self._backoff > 1.0:
            self._backoff = max(1.0, self._backoff * 0.9)  # Slow recovery
