"""
Process-wide failure gate in front of the model.

Counts consecutive retryable failures across all callers. Reaching the
threshold opens the breaker for a cool-down window; while open the gateway
dispatches nothing new. The breaker closes itself when the window elapses.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .clock import SYSTEM_CLOCK, Clock


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"


@dataclass
class BreakerStatus:
    state: CircuitState
    consecutive_failures: int
    open_until: Optional[float]
    times_opened: int

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def to_dict(self):
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "open_until": self.open_until,
            "times_opened": self.times_opened,
        }


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown: float = 30.0,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.clock = clock or SYSTEM_CLOCK
        self.logger = logger or logging.getLogger(__name__)

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._open_until: Optional[float] = None
        self._times_opened = 0

    def _refresh(self):
        if self._state == CircuitState.OPEN and self.clock.monotonic() >= self._open_until:
            self.logger.info(
                f"[CircuitBreaker] Cool-down of {self.cooldown:.1f}s elapsed, resuming dispatch"
            )
            self._state = CircuitState.CLOSED
            self._open_until = None
            self._consecutive_failures = 0

    def is_open(self) -> bool:
        self._refresh()
        return self._state == CircuitState.OPEN

    def remaining(self) -> float:
        """Seconds left in the current cool-down (0 when closed)."""
        if not self.is_open():
            return 0.0
        return max(0.0, self._open_until - self.clock.monotonic())

    def record_success(self):
        self._consecutive_failures = 0

    def record_failure(self):
        """Count one retryable failure; open the breaker at the threshold."""
        self._consecutive_failures += 1
        if self._state == CircuitState.OPEN:
            return
        if self._consecutive_failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._open_until = self.clock.monotonic() + self.cooldown
            self._times_opened += 1
            self.logger.error(
                f"[CircuitBreaker] Opened after {self._consecutive_failures} consecutive "
                f"retryable failures, pausing dispatch for {self.cooldown:.1f}s"
            )

    def reset(self):
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._open_until = None

    def status(self) -> BreakerStatus:
        # Reading state must not close the breaker; report what is stored.
        open_now = (
            self._state == CircuitState.OPEN
            and self.clock.monotonic() < self._open_until
        )
        return BreakerStatus(
            state=CircuitState.OPEN if open_now else CircuitState.CLOSED,
            consecutive_failures=self._consecutive_failures,
            open_until=self._open_until if open_now else None,
            times_opened=self._times_opened,
        )
