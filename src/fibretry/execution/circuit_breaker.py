"""Circuit breaker owned by one retry executor.

Stops issuing attempts once failures cluster. The breaker is consulted once
per call, before the first attempt, and told the outcome of every attempt.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Failing fast, calls rejected without invoking the operation
    HALF_OPEN: Open duration elapsed; the next call is let through as a probe

Transitions:
    CLOSED/HALF_OPEN ──(consecutive failures == threshold)──▶ OPEN
        records opened_at, resets the failure counter
    OPEN ──(allow_request() after open duration)──▶ HALF_OPEN
        evaluated lazily, no background timer
    CLOSED/HALF_OPEN ──(any success)──▶ CLOSED
        resets the failure counter

A HALF_OPEN breaker counts failures exactly like a CLOSED one; it only
re-trips once the threshold is crossed again.

Example:
    >>> breaker = CircuitBreaker(name="payments", failure_threshold=2, open_duration=30.0)
    >>> breaker.record_failure()
    False
    >>> breaker.record_failure()
    True
    >>> breaker.allow_request()
    False
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fibretry.core.errors import CircuitOpenError
from fibretry.core.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Rejecting requests
    HALF_OPEN = "half_open"  # Probing recovery


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    trips: int = 0
    state_changes: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    last_state_change: datetime | None = None

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate as percentage."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100

    def snapshot(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "rejected_requests": self.rejected_requests,
            "trips": self.trips,
            "state_changes": self.state_changes,
            "failure_rate": self.failure_rate,
        }


@dataclass
class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Attributes:
        name: Identifier used in logs and errors
        failure_threshold: Consecutive failures before opening; ``None`` never opens
        open_duration: Seconds the breaker stays open before a probe is allowed
        clock: Monotonic time source in seconds
    """

    name: str = "default"
    failure_threshold: int | None = 5
    open_duration: float = 60.0
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state, without triggering the lazy OPEN → HALF_OPEN move."""
        with self._lock:
            return self._state

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._state == CircuitState.OPEN

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def opened_at(self) -> float | None:
        with self._lock:
            return self._opened_at

    @property
    def stats(self) -> CircuitStats:
        return self._stats

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = utcnow()
        logger.info(
            "circuit.state_changed",
            breaker=self.name,
            old_state=old_state.value,
            new_state=new_state.value,
        )

    def _remaining(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.open_duration - (self.clock() - self._opened_at))

    def allow_request(self) -> bool:
        """Check if a call may start.

        Returns:
            True if the call can proceed, False if the circuit is open
        """
        with self._lock:
            self._stats.total_requests += 1

            if self._state == CircuitState.OPEN:
                if self.clock() - self._opened_at > self.open_duration:
                    self._transition_to(CircuitState.HALF_OPEN)
                    return True
                self._stats.rejected_requests += 1
                return False

            return True

    def check(self) -> None:
        """``allow_request()`` that raises instead of returning False.

        Raises:
            CircuitOpenError: If the circuit is open
        """
        if self.allow_request():
            return
        with self._lock:
            remaining_ms = self._remaining() * 1000.0
        logger.warning("circuit.rejected", breaker=self.name, retry_after_ms=remaining_ms)
        raise CircuitOpenError(
            f"Circuit '{self.name}' is open, rejecting request",
            retry_after_ms=remaining_ms,
        ).with_context(executor=self.name)

    def record_success(self) -> None:
        """Record a successful attempt."""
        with self._lock:
            self._stats.successful_requests += 1
            self._stats.last_success_time = utcnow()
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)

    def record_failure(self, error: BaseException | None = None) -> bool:
        """Record a failed attempt.

        Returns:
            True if this failure tripped the breaker
        """
        with self._lock:
            self._stats.failed_requests += 1
            self._stats.last_failure_time = utcnow()
            self._failure_count += 1

            if self.failure_threshold is None or self._failure_count < self.failure_threshold:
                return False

            self._trip()
            logger.error(
                "circuit.tripped",
                breaker=self.name,
                threshold=self.failure_threshold,
                open_duration=self.open_duration,
                error=repr(error) if error is not None else None,
            )
            return True

    def _trip(self) -> None:
        self._transition_to(CircuitState.OPEN)
        self._opened_at = self.clock()
        self._failure_count = 0
        self._stats.trips += 1

    def reset(self) -> None:
        """Reset circuit to closed state."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._opened_at = None

    def force_open(self) -> None:
        """Force circuit to open state (for testing/maintenance)."""
        with self._lock:
            self._trip()
