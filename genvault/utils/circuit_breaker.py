"""
Consecutive-failure circuit breaker for the acquisition queue.
"""

import logging
from enum import Enum

from genvault.exceptions import CircuitBreakerError

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Stop attempting items


class CircuitBreaker:
    """
    Stops a run after too many consecutive item failures.

    A run of failures usually means the session or credential went stale, so
    further attempts only hammer the remote service. Any success resets the
    counter. There is no half-open recovery: once open, the breaker stays open
    for the rest of the run.
    """

    def __init__(self, failure_threshold: int = 5):
        """
        Args:
            failure_threshold: Number of consecutive failures before opening.
        """
        self.failure_threshold = failure_threshold
        self._state = CircuitState.CLOSED
        self._failure_count = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failure_count

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def record_success(self) -> None:
        self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        if (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.failure_threshold
        ):
            log.error(
                f"[red]✗ Circuit breaker OPENED after {self._failure_count} "
                "consecutive failures. Session may be expired.[/red]"
            )
            self._state = CircuitState.OPEN

    def check(self) -> None:
        """
        Raises:
            CircuitBreakerError: If the breaker has opened.
        """
        if self._state == CircuitState.OPEN:
            raise CircuitBreakerError(
                f"Stopped after {self._failure_count} consecutive failures."
            )
