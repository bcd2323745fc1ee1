"""Circuit breaker guarding outbound notification transports."""

import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Callable, Any

from ..utils.logging_config import get_logger

logger = get_logger("notifications")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Requests fail fast
    HALF_OPEN = "half_open"  # Testing if the transport recovered


class CircuitOpenError(Exception):
    """Exception raised when circuit breaker is open."""

    pass


class CircuitBreaker:
    """
    Fails fast while a downstream transport is unhealthy.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Requests fail immediately
    - HALF_OPEN: Testing recovery, a success streak closes the circuit
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout_seconds: int = 60,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            failure_threshold: Number of failures before opening circuit
            success_threshold: Successes needed to close circuit from half-open
            timeout_seconds: How long to keep circuit open before trying half-open
            clock: Source of the current time, UTC now by default
        """
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout_seconds = timeout_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[datetime] = None

    def call(self, func: Callable[[], Any]) -> Any:
        """
        Call function with circuit breaker protection.

        Raises:
            CircuitOpenError: If circuit is open
            Exception: Any exception from the function
        """
        now = self._clock()
        with self._lock:
            self._update_state(now)
            if self.state == CircuitState.OPEN:
                logger.warning("Circuit breaker is OPEN - failing fast")
                raise CircuitOpenError("Circuit breaker is open")

        try:
            result = func()
        except Exception as e:
            with self._lock:
                self._on_failure(now, e)
            raise

        with self._lock:
            self._on_success()
        return result

    def _update_state(self, now: datetime) -> None:
        if self.state == CircuitState.OPEN and self.last_failure_time is not None:
            if now - self.last_failure_time >= timedelta(seconds=self.timeout_seconds):
                logger.info("Circuit breaker transitioning from OPEN to HALF_OPEN")
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                logger.info("Circuit breaker transitioning from HALF_OPEN to CLOSED")
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                self.success_count = 0
        else:
            self.failure_count = 0

    def _on_failure(self, now: datetime, exception: Exception) -> None:
        self.last_failure_time = now

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(
                f"Circuit breaker failure in HALF_OPEN - returning to OPEN: {exception}"
            )
            self.state = CircuitState.OPEN
            self.failure_count += 1
            return

        self.failure_count += 1
        logger.warning(
            f"Circuit breaker failure {self.failure_count}/{self.failure_threshold}: {exception}"
        )
        if self.failure_count >= self.failure_threshold:
            logger.error(f"Circuit breaker opening after {self.failure_count} failures")
            self.state = CircuitState.OPEN

    def get_stats(self) -> dict:
        """Get current circuit breaker statistics."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "last_failure_time": self.last_failure_time.isoformat()
            if self.last_failure_time
            else None,
        }

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.last_failure_time = None
