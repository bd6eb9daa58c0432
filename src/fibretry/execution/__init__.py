"""fibretry execution — the retry engine.

ARCHITECTURE
────────────
::

    RetryConfiguration (validated once)
      │
      ▼
    RetryExecutor ─ call / run / call_async / run_async / submit
      ├── DelayLadder      ─ Fibonacci base delay per attempt
      ├── JitterSampler    ─ ± fraction, floored at 1 ms
      ├── CircuitBreaker   ─ closed / open / half-open, one lock
      ├── RetryListener    ─ before_retry / on_retry_failure
      └── DelayScheduler   ─ shared event-loop timer, graceful shutdown

MODULE MAP
──────────
  1. config.py           ─ RetryConfiguration, simple_policy
  2. backoff.py          ─ DelayLadder, JitterSampler
  3. circuit_breaker.py  ─ CircuitBreaker, CircuitState, CircuitStats
  4. listeners.py        ─ RetryListener + bundled listeners
  5. scheduler.py        ─ DelayScheduler, CancellationToken
  6. retry.py            ─ RetryExecutor, AttemptContext, ExecutorStats
"""

from fibretry.execution.backoff import MAX_DELAY_MS, DelayLadder, JitterSampler, fibonacci_ladder
from fibretry.execution.circuit_breaker import CircuitBreaker, CircuitState, CircuitStats
from fibretry.execution.config import (
    DEFAULT_CIRCUIT_OPEN_MS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_JITTER_FACTOR,
    MAX_ALLOWED_ATTEMPTS,
    RetryConfiguration,
    simple_policy,
)
from fibretry.execution.listeners import (
    CompositeListener,
    LoggingListener,
    NullListener,
    RecordingListener,
    RetryListener,
)
from fibretry.execution.retry import AttemptContext, ExecutorStats, RetryExecutor
from fibretry.execution.scheduler import CancellationToken, DelayScheduler

__all__ = [
    # Config
    "RetryConfiguration",
    "simple_policy",
    "MAX_ALLOWED_ATTEMPTS",
    "DEFAULT_JITTER_FACTOR",
    "DEFAULT_FAILURE_THRESHOLD",
    "DEFAULT_CIRCUIT_OPEN_MS",
    # Backoff
    "DelayLadder",
    "JitterSampler",
    "fibonacci_ladder",
    "MAX_DELAY_MS",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitState",
    "CircuitStats",
    # Listeners
    "RetryListener",
    "NullListener",
    "LoggingListener",
    "RecordingListener",
    "CompositeListener",
    # Scheduling
    "DelayScheduler",
    "CancellationToken",
    # Executor
    "RetryExecutor",
    "AttemptContext",
    "ExecutorStats",
]
