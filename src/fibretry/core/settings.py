"""Environment-driven settings for fibretry.

``RetrySettings`` reads ``FIBRETRY_*`` environment variables (and a local
``.env`` file) so services and the CLI can build a ``RetryConfiguration``
without hard-coding parameters.

Examples:
    >>> import os
    >>> os.environ["FIBRETRY_MAX_ATTEMPTS"] = "7"
    >>> RetrySettings().max_attempts
    7
    >>> RetrySettings().to_configuration().max_attempts
    7

Pydantic enforces field types and the coarse ranges; the engine's own
validation (``ConfigurationError``) still runs when the configuration is
built, so both entry points reject the same values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from fibretry.execution.config import RetryConfiguration


class RetrySettings(BaseSettings):
    """Settings shared by the CLI and by services embedding the engine.

    Fields
    ──────
    max_attempts           : Attempt budget per call (1-30)
    initial_delay_ms       : First rung of the Fibonacci ladder
    jitter_factor          : ± fraction applied to every delay
    failure_threshold      : Consecutive failures that trip the breaker (None = never)
    circuit_open_ms        : How long a tripped breaker rejects calls
    shutdown_grace_seconds : Bounded wait for in-flight calls on shutdown
    log_level              : Structlog log level
    log_json               : Force JSON (True) / console (False) / auto (None)
    """

    model_config = SettingsConfigDict(
        env_prefix="FIBRETRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Retry ────────────────────────────────────────────────────
    max_attempts: int = Field(5, ge=1, le=30)
    initial_delay_ms: int = Field(100, ge=1)
    jitter_factor: float = Field(0.1, ge=0.0)

    # ── Circuit breaker ──────────────────────────────────────────
    failure_threshold: int | None = Field(5, ge=1)
    circuit_open_ms: int = Field(60_000, ge=0)

    # ── Lifecycle ────────────────────────────────────────────────
    shutdown_grace_seconds: float = Field(5.0, ge=0.0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    def to_configuration(self) -> RetryConfiguration:
        """Build the immutable engine configuration from these settings."""
        from fibretry.execution.config import RetryConfiguration

        return RetryConfiguration(
            max_attempts=self.max_attempts,
            initial_delay_ms=self.initial_delay_ms,
            jitter_factor=self.jitter_factor,
            failure_threshold=self.failure_threshold,
            circuit_open_ms=self.circuit_open_ms,
        )
