"""Retry observers.

A listener hears about each imminent delay and about final exhaustion. It
never changes control flow: if a callback raises, the executor logs
``listener.failed`` and carries on.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from fibretry.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class RetryListener(Protocol):
    """Observer of a retry sequence.

    ``before_retry`` is called once per retry, just before the delay starts,
    with the 0-based index of the attempt that failed and the jittered delay
    in milliseconds. ``on_retry_failure`` is called once when every attempt
    has failed, with the final operation error.
    """

    def before_retry(self, attempt: int, delay_ms: float) -> None: ...

    def on_retry_failure(self, error: BaseException) -> None: ...


class NullListener:
    """Listener that ignores everything."""

    def before_retry(self, attempt: int, delay_ms: float) -> None:
        pass

    def on_retry_failure(self, error: BaseException) -> None:
        pass


class LoggingListener:
    """Emit one structured log event per retry and per exhaustion."""

    def __init__(self, name: str = "default") -> None:
        self.name = name

    def before_retry(self, attempt: int, delay_ms: float) -> None:
        logger.info("listener.before_retry", executor=self.name, attempt=attempt, delay_ms=delay_ms)

    def on_retry_failure(self, error: BaseException) -> None:
        logger.error("listener.retry_failure", executor=self.name, error=repr(error))


class RecordingListener:
    """Collect delays and failures, e.g. to feed ``export_retry_data``.

    Thread-safe, so one instance can observe concurrent calls.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._delays: list[tuple[int, float]] = []
        self._failures: list[BaseException] = []

    def before_retry(self, attempt: int, delay_ms: float) -> None:
        with self._lock:
            self._delays.append((attempt, delay_ms))

    def on_retry_failure(self, error: BaseException) -> None:
        with self._lock:
            self._failures.append(error)

    @property
    def delays(self) -> list[tuple[int, float]]:
        with self._lock:
            return list(self._delays)

    @property
    def failures(self) -> list[BaseException]:
        with self._lock:
            return list(self._failures)

    @property
    def rows(self) -> list[tuple[int, float]]:
        """Recorded delays as 1-based ``(attempt, delay_ms)`` rows."""
        return [(attempt + 1, delay) for attempt, delay in self.delays]

    def clear(self) -> None:
        with self._lock:
            self._delays.clear()
            self._failures.clear()


class CompositeListener:
    """Fan a notification out to several listeners, isolating each one."""

    def __init__(self, *listeners: RetryListener) -> None:
        self.listeners = list(listeners)

    def before_retry(self, attempt: int, delay_ms: float) -> None:
        for listener in self.listeners:
            notify(listener.before_retry, attempt, delay_ms)

    def on_retry_failure(self, error: BaseException) -> None:
        for listener in self.listeners:
            notify(listener.on_retry_failure, error)


def notify(callback, *args) -> None:
    """Invoke a listener callback; a raising observer is logged, not propagated."""
    try:
        callback(*args)
    except Exception:
        logger.exception("listener.failed", callback=getattr(callback, "__qualname__", repr(callback)))
