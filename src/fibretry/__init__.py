"""
fibretry - Fibonacci-backoff retries with an integrated circuit breaker.

Wrap any failure-prone call without teaching it about retries:

    >>> from fibretry import RetryConfiguration, RetryExecutor
    >>> with RetryExecutor(RetryConfiguration(max_attempts=5, initial_delay_ms=100)) as ex:
    ...     ex.call(lambda: "ok")
    'ok'
"""

__version__ = "0.1.0"

from fibretry.core.errors import (  # noqa: E402
    CircuitOpenError,
    ConfigurationError,
    FibretryError,
    RetryCancelledError,
    RetryExhaustedError,
    SchedulerShutdownError,
)
from fibretry.execution import (  # noqa: E402
    CancellationToken,
    CircuitBreaker,
    CircuitState,
    DelayLadder,
    DelayScheduler,
    JitterSampler,
    RecordingListener,
    RetryConfiguration,
    RetryExecutor,
    RetryListener,
    simple_policy,
)
from fibretry.observability import export_retry_data  # noqa: E402

__all__ = [
    "__version__",
    "FibretryError",
    "ConfigurationError",
    "CircuitOpenError",
    "RetryExhaustedError",
    "RetryCancelledError",
    "SchedulerShutdownError",
    "RetryConfiguration",
    "simple_policy",
    "RetryExecutor",
    "RetryListener",
    "RecordingListener",
    "CircuitBreaker",
    "CircuitState",
    "DelayLadder",
    "JitterSampler",
    "DelayScheduler",
    "CancellationToken",
    "export_retry_data",
]
