"""
Circuit breaker guarding calls to the tracker.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when the circuit is open and calls are being rejected."""


class CircuitBreaker:
    """
    Stops hammering an upstream that keeps failing.

    States:
    - CLOSED: calls pass through
    - OPEN: too many consecutive failures, calls are rejected
    - HALF_OPEN: recovery window, a few trial calls are let through
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        success_threshold: int = 2,
        ignored_exceptions: tuple[type[BaseException], ...] = (),
    ):
        """
        Args:
            name: Label used in log messages.
            failure_threshold: Consecutive failures before the circuit opens.
            recovery_timeout: Seconds to wait before allowing trial calls.
            success_threshold: Trial successes needed to close the circuit again.
            ignored_exceptions: Exceptions that do not count as upstream failures.
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.ignored_exceptions = ignored_exceptions

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _check_state(self) -> None:
        """Moves an OPEN circuit to HALF_OPEN once the recovery timeout passed."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return
        elapsed = time.monotonic() - self._last_failure_time
        if elapsed >= self.recovery_timeout:
            log.info(
                f"[yellow]{self.name}: circuit half-open, "
                f"testing recovery after {elapsed:.0f}s[/yellow]"
            )
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0

    async def _on_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    log.info(f"[green]✓ {self.name}: circuit closed.[/green]")
                    self._state = CircuitState.CLOSED
                    self._success_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                log.warning(
                    f"[yellow]{self.name}: recovery test failed, "
                    "circuit open again.[/yellow]"
                )
                self._state = CircuitState.OPEN
                self._failure_count = 0
                self._success_count = 0
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                log.error(
                    f"[red]✗ {self.name}: circuit opened after "
                    f"{self._failure_count} consecutive failures. "
                    f"Calls blocked for {self.recovery_timeout}s.[/red]"
                )
                self._state = CircuitState.OPEN

    async def __aenter__(self):
        async with self._lock:
            self._check_state()
            if self._state == CircuitState.OPEN:
                raise CircuitBreakerError(
                    f"{self.name} circuit is open. Will retry after "
                    f"{self.recovery_timeout} seconds."
                )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None or issubclass(exc_type, self.ignored_exceptions):
            await self._on_success()
        else:
            await self._on_failure()
        return False
