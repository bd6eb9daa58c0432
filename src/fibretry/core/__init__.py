"""fibretry core — errors, logging and settings shared by every module."""

from fibretry.core.errors import (
    CircuitOpenError,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    FibretryError,
    RetryCancelledError,
    RetryExhaustedError,
    SchedulerShutdownError,
)
from fibretry.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FibretryError",
    "ConfigurationError",
    "CircuitOpenError",
    "RetryExhaustedError",
    "RetryCancelledError",
    "SchedulerShutdownError",
    "configure_logging",
    "get_logger",
    "LogContext",
]
