# Author: Bradley R. Kinnard — stop hitting it when it's down

"""
Process-wide circuit breaker for the generation endpoint.
CLOSED -> OPEN after N straight failures, OPEN -> HALF_OPEN once the cooldown passes,
HALF_OPEN -> CLOSED on a good call or back to OPEN on a bad one.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable

log = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    def __init__(self, failure_threshold: int = 3, reset_timeout_ms: int = 120_000,
                 enabled: bool = True, clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def before_call(self) -> int:
        """
        0 if the call may go ahead, otherwise ms left until the breaker will allow a probe.
        Moves OPEN -> HALF_OPEN when the cooldown is over.
        """
        if not self.enabled:
            return 0
        with self._lock:
            if self._state is not CircuitState.OPEN:
                return 0
            elapsed_ms = (self._clock() - self._opened_at) * 1000
            if elapsed_ms >= self.reset_timeout_ms:
                self._state = CircuitState.HALF_OPEN
                log.info("circuit half-open, letting a probe through")
                return 0
            return max(1, int(self.reset_timeout_ms - elapsed_ms))

    def record_success(self) -> None:
        if not self.enabled:
            return
        with self._lock:
            if self._state is not CircuitState.CLOSED:
                log.info(f"circuit closed after {self._state.value}")
            self._state = CircuitState.CLOSED
            self._failures = 0

    def record_failure(self) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._failures += 1
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                log.warning("probe failed, circuit re-opened")
            elif self._state is CircuitState.CLOSED and self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                log.warning(f"circuit opened after {self._failures} consecutive failures")

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = 0.0
