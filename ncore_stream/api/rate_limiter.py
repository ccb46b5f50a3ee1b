"""
Paces requests to the nCore tracker. A search fans out into page fetches and
one .torrent download per hit, so the client needs its own brake.
"""

import asyncio
import logging
import time

log = logging.getLogger(__name__)


class AdaptiveRateLimiter:
    """
    Hands out request slots at most `rate` per second.

    An HTTP 429 from the tracker halves the rate (never below one request per
    second). After `RECOVERY_QUIET_PERIOD` seconds without another 429, each
    slot nudges the rate back up towards `max_calls_per_second`.
    """

    RECOVERY_QUIET_PERIOD = 300
    RECOVERY_STEP = 1.005
    BACKOFF_FACTOR = 0.5
    MIN_RATE = 1.0

    def __init__(
        self, initial_calls_per_second: float = 8.0, max_calls_per_second: float = 12.0
    ):
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._next_slot = 0.0
        self._throttled_at = float("-inf")
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def on_429(self) -> None:
        """Backs off after the tracker reported too many requests."""
        async with self._lock:
            self._rate = max(self.MIN_RATE, self._rate * self.BACKOFF_FACTOR)
            self._throttled_at = time.monotonic()
            log.warning(
                f"[yellow]nCore is throttling requests, slowing down to "
                f"{self._rate:.1f} requests/s[/yellow]"
            )

    async def acquire(self) -> None:
        """Waits for the next free request slot."""
        async with self._lock:
            now = time.monotonic()
            if now - self._throttled_at > self.RECOVERY_QUIET_PERIOD:
                self._rate = min(self._max_rate, self._rate * self.RECOVERY_STEP)

            if self._next_slot > now:
                await asyncio.sleep(self._next_slot - now)
                now = time.monotonic()
            self._next_slot = now + 1.0 / self._rate
