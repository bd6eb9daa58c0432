"""
Shared pytest fixtures for fibretry tests.

This module provides:
- Logging reset between tests
- A controllable monotonic clock for breaker timing
- Flaky operation helpers
- Executor factories that always shut their scheduler down
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from typing import Any

import pytest
import structlog

from fibretry.execution import RecordingListener, RetryConfiguration, RetryExecutor


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults so one test's configuration never leaks."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Operations
# =============================================================================


class FailNTimes:
    """Raise on the first ``failures`` invocations, then return ``result``."""

    def __init__(self, failures: int, result: Any = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0
        self.errors: list[Exception] = []
        self._lock = threading.Lock()

    def __call__(self) -> Any:
        with self._lock:
            self.calls += 1
            call = self.calls
        if call <= self.failures:
            error = ConnectionError(f"failure {call}")
            self.errors.append(error)
            raise error
        return self.result


class AlwaysFail(FailNTimes):
    """Never succeeds."""

    def __init__(self) -> None:
        super().__init__(failures=10**9)


@pytest.fixture
def fail_n_times() -> type[FailNTimes]:
    return FailNTimes


@pytest.fixture
def always_fail() -> AlwaysFail:
    return AlwaysFail()


# =============================================================================
# Executors
# =============================================================================


@pytest.fixture
def recorder() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def make_executor(clock: FakeClock) -> Generator[Callable[..., RetryExecutor], None, None]:
    """Build executors with millisecond delays, the fake clock and no jitter by default."""
    created: list[RetryExecutor] = []

    def _make(
        max_attempts: int = 5,
        initial_delay_ms: int = 1,
        jitter_factor: float = 0.0,
        failure_threshold: int | None = 5,
        circuit_open_ms: int = 60_000,
        **kwargs: Any,
    ) -> RetryExecutor:
        kwargs.setdefault("clock", clock)
        executor = RetryExecutor(
            RetryConfiguration(
                max_attempts=max_attempts,
                initial_delay_ms=initial_delay_ms,
                jitter_factor=jitter_factor,
                failure_threshold=failure_threshold,
                circuit_open_ms=circuit_open_ms,
            ),
            **kwargs,
        )
        created.append(executor)
        return executor

    yield _make

    for executor in created:
        executor.shutdown(grace_period=1.0)
