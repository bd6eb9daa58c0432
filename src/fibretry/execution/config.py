"""Immutable retry configuration.

``RetryConfiguration`` is validated once, at construction. An executor
built from it can never fail on first use because of a bad parameter.

Example:
    >>> cfg = RetryConfiguration(max_attempts=5, initial_delay_ms=100)
    >>> cfg.jitter_factor, cfg.failure_threshold, cfg.circuit_open_ms
    (0.1, 5, 60000)
    >>> simple_policy(4).breaker_enabled
    False
"""

from __future__ import annotations

from dataclasses import dataclass

from fibretry.core.errors import ConfigurationError
from fibretry.core.logging import get_logger

logger = get_logger(__name__)

MAX_ALLOWED_ATTEMPTS = 30
DEFAULT_JITTER_FACTOR = 0.1
DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_CIRCUIT_OPEN_MS = 60_000
SIMPLE_POLICY_INITIAL_DELAY_MS = 1000


@dataclass(frozen=True)
class RetryConfiguration:
    """Parameters of one retry engine.

    Attributes:
        max_attempts: Total invocations allowed per call (1-30)
        initial_delay_ms: First two rungs of the Fibonacci ladder (>= 1)
        jitter_factor: Delays are perturbed by up to ± this fraction
        failure_threshold: Consecutive failures that trip the breaker;
            ``None`` disables the breaker entirely
        circuit_open_ms: How long a tripped breaker rejects calls
    """

    max_attempts: int
    initial_delay_ms: int
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    failure_threshold: int | None = DEFAULT_FAILURE_THRESHOLD
    circuit_open_ms: int = DEFAULT_CIRCUIT_OPEN_MS

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ConfigurationError(
                f"max_attempts must be an integer, got {self.max_attempts!r}",
                field_name="max_attempts",
            )
        if not 1 <= self.max_attempts <= MAX_ALLOWED_ATTEMPTS:
            raise ConfigurationError(
                f"max_attempts must be between 1 and {MAX_ALLOWED_ATTEMPTS}, got {self.max_attempts}",
                field_name="max_attempts",
            )
        if isinstance(self.initial_delay_ms, bool) or not isinstance(self.initial_delay_ms, int):
            raise ConfigurationError(
                f"initial_delay_ms must be an integer, got {self.initial_delay_ms!r}",
                field_name="initial_delay_ms",
            )
        if self.initial_delay_ms < 1:
            raise ConfigurationError(
                f"initial_delay_ms must be >= 1, got {self.initial_delay_ms}",
                field_name="initial_delay_ms",
            )
        if self.jitter_factor < 0:
            raise ConfigurationError(
                f"jitter_factor must be >= 0, got {self.jitter_factor}",
                field_name="jitter_factor",
            )
        if self.jitter_factor >= 1:
            logger.warning("config.jitter_factor_high", jitter_factor=self.jitter_factor)
        if self.failure_threshold is not None and self.failure_threshold < 1:
            raise ConfigurationError(
                f"failure_threshold must be >= 1 or None, got {self.failure_threshold}",
                field_name="failure_threshold",
            )
        if self.circuit_open_ms < 0:
            raise ConfigurationError(
                f"circuit_open_ms must be >= 0, got {self.circuit_open_ms}",
                field_name="circuit_open_ms",
            )

    @property
    def breaker_enabled(self) -> bool:
        return self.failure_threshold is not None

    @property
    def circuit_open_seconds(self) -> float:
        return self.circuit_open_ms / 1000.0


def simple_policy(max_attempts: int) -> RetryConfiguration:
    """Plain Fibonacci retry: 1000 ms seed, no jitter, no circuit breaker."""
    return RetryConfiguration(
        max_attempts=max_attempts,
        initial_delay_ms=SIMPLE_POLICY_INITIAL_DELAY_MS,
        jitter_factor=0.0,
        failure_threshold=None,
    )
