"""
Structured error types for fibretry.

Every terminal outcome of a retry call other than success crosses the public
boundary as exactly one of the errors below. Per-attempt failures never do;
they go to logging and to listeners.

Manifesto:
    - **Typed Error Hierarchy:** One error type per terminal outcome
    - **Explicit Retry Semantics:** Each error knows if the caller may retry
    - **Rich Context:** Errors carry executor name, attempts, and delays
    - **Error Chaining:** The last operation failure is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       FibretryError                              │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigurationError      CircuitOpenError      RetryExhaustedError│
        │  (CONFIG, construction)  (CIRCUIT, fail-fast)  (EXHAUSTED)       │
        │                                                                  │
        │  RetryCancelledError     SchedulerShutdownError                  │
        │  (CANCELLED, also        (SCHEDULER)                             │
        │   asyncio.CancelledError)                                        │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ConfigurationError("max_attempts must be between 1 and 30")
    >>> error.retryable
    False
    >>> error.to_dict()["category"]
    'CONFIG'

    >>> try:
    ...     raise ConnectionError("DNS failure")
    ... except ConnectionError as e:
    ...     err = RetryExhaustedError("gave up", last_error=e, attempts=3)
    >>> err.cause
    ConnectionError('DNS failure')

Guardrails:
    ❌ DON'T: Collect every per-attempt error into the terminal error
    ✅ DO: Keep only the last failure; use a RetryListener for detail

    ❌ DON'T: Retry on ConfigurationError
    ✅ DO: Fix the construction parameters
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"             # Invalid construction parameters
    CIRCUIT = "CIRCUIT"           # Breaker rejected the call
    EXHAUSTED = "EXHAUSTED"       # Attempt budget spent
    CANCELLED = "CANCELLED"       # Interrupted during a delay
    SCHEDULER = "SCHEDULER"       # Delay facility unavailable
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        executor: Name of the RetryExecutor that raised
        attempts: Number of operation invocations made by the call
        elapsed_delay_ms: Total delay waited by the call
        metadata: Additional key-value pairs
    """

    executor: str | None = None
    attempts: int | None = None
    elapsed_delay_ms: float | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["executor", "attempts", "elapsed_delay_ms"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FibretryError(Exception):
    """
    Base exception for all fibretry errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their outcome.

    Examples:
        >>> error = FibretryError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error.with_context(executor="payments").context.executor
        'payments'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FibretryError:
        """
        Add context to this error (fluent API).

        Usage:
            raise RetryExhaustedError("failed").with_context(executor="api")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONSTRUCTION ERRORS
# =============================================================================


class ConfigurationError(FibretryError):
    """Invalid construction parameters or delay-ladder overflow. Never retried."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str, *, field_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field_name = field_name
        if field_name:
            self.context.metadata["field"] = field_name


# =============================================================================
# TERMINAL CALL OUTCOMES
# =============================================================================


class CircuitOpenError(FibretryError):
    """
    Raised when the circuit is open and the call is rejected.

    No attempt was made and no breaker state changed. The caller may try
    again after ``retry_after_ms``.
    """

    default_category = ErrorCategory.CIRCUIT
    default_retryable = True

    def __init__(
        self,
        message: str = "Circuit breaker is open",
        *,
        retry_after_ms: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.retry_after_ms = retry_after_ms

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.retry_after_ms is not None:
            result["retry_after_ms"] = self.retry_after_ms
        return result


class RetryExhaustedError(FibretryError):
    """
    All attempts failed.

    Wraps only the final underlying failure (``last_error``, also
    ``__cause__``). ``delays`` holds the delays waited as 1-based
    ``(attempt, delay_ms)`` rows, the shape ``export_retry_data`` writes.
    """

    default_category = ErrorCategory.EXHAUSTED

    def __init__(
        self,
        message: str,
        *,
        last_error: BaseException | None = None,
        attempts: int | None = None,
        elapsed_delay_ms: float | None = None,
        delays: Sequence[tuple[int, float]] = (),
        **kwargs: Any,
    ):
        kwargs.setdefault("cause", last_error)
        super().__init__(message, **kwargs)
        self.last_error = last_error
        self.delays = tuple(delays)
        if attempts is not None:
            self.context.attempts = attempts
        if elapsed_delay_ms is not None:
            self.context.elapsed_delay_ms = elapsed_delay_ms

    @property
    def attempts(self) -> int | None:
        return self.context.attempts

    @property
    def elapsed_delay_ms(self) -> float | None:
        return self.context.elapsed_delay_ms


class RetryCancelledError(FibretryError, asyncio.CancelledError):
    """
    The call was cancelled while waiting between attempts.

    Distinct from exhaustion. It is also an ``asyncio.CancelledError`` so a
    cancelled task that surfaces it still finishes in the cancelled state.
    ``delays`` holds the delays completed before cancellation.
    """

    default_category = ErrorCategory.CANCELLED

    def __init__(
        self,
        message: str = "Retry cancelled during delay",
        *,
        last_error: BaseException | None = None,
        attempts: int | None = None,
        elapsed_delay_ms: float | None = None,
        delays: Sequence[tuple[int, float]] = (),
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.last_error = last_error
        self.delays = tuple(delays)
        if attempts is not None:
            self.context.attempts = attempts
        if elapsed_delay_ms is not None:
            self.context.elapsed_delay_ms = elapsed_delay_ms

    @property
    def attempts(self) -> int | None:
        return self.context.attempts


class SchedulerShutdownError(FibretryError):
    """The delay scheduler was shut down and accepts no new work."""

    default_category = ErrorCategory.SCHEDULER


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FibretryError",
    "ConfigurationError",
    "CircuitOpenError",
    "RetryExhaustedError",
    "RetryCancelledError",
    "SchedulerShutdownError",
]
