"""Retry executor: Fibonacci backoff, jitter and a circuit breaker in one loop.

Example:
    >>> from fibretry.execution import RetryConfiguration, RetryExecutor
    >>>
    >>> executor = RetryExecutor(RetryConfiguration(max_attempts=5, initial_delay_ms=100))
    >>> payload = executor.call(lambda: fetch_quote("AAPL"))
    >>>
    >>> future = executor.submit(lambda: fetch_quote("MSFT"))   # non-blocking
    >>> future.result(timeout=10)
    >>>
    >>> executor.shutdown()

Every call shape (``call``, ``run``, ``call_async``, ``run_async``,
``submit``) follows the same algorithm:

    0. register with the scheduler     ─ SchedulerShutdownError once shutdown began
    1. breaker.check()                 ─ CircuitOpenError, zero attempts
    2. for attempt in range(max_attempts):
         invoke operation
           success → breaker.record_success(), return
           failure → breaker.record_failure()   (may trip, silently)
                     last attempt → RetryExhaustedError(last_error)
                     cancelled or scheduler closed → RetryCancelledError
                     else delay = jitter(ladder[attempt])
                          listener.before_retry(attempt, delay)
                          suspend(delay)        ─ RetryCancelledError if cancelled

Only ``Exception`` counts as an operation failure. ``KeyboardInterrupt``,
``SystemExit`` and task cancellation propagate untouched and are not
recorded on the breaker.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import random
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from fibretry.core.errors import CircuitOpenError, RetryCancelledError, RetryExhaustedError
from fibretry.core.logging import LogContext, get_logger
from fibretry.execution.backoff import DelayLadder, JitterSampler
from fibretry.execution.circuit_breaker import CircuitBreaker
from fibretry.execution.config import RetryConfiguration
from fibretry.execution.listeners import NullListener, RetryListener, notify
from fibretry.execution.scheduler import DEFAULT_GRACE_PERIOD, CancellationToken, DelayScheduler

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class AttemptContext:
    """Per-call retry state. Created at call entry, discarded at exit."""

    executor: str
    max_attempts: int
    attempt: int = 0
    attempts_made: int = 0
    elapsed_delay_ms: float = 0.0
    last_error: BaseException | None = None
    # Completed delays as 1-based (attempt, delay_ms) rows.
    delays: list[tuple[int, float]] = field(default_factory=list)

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt >= self.max_attempts - 1


@dataclass
class ExecutorStats:
    """Counters across every call made through one executor."""

    calls: int = 0
    attempts: int = 0
    retries: int = 0
    successes: int = 0
    exhaustions: int = 0
    rejections: int = 0
    cancellations: int = 0

    def snapshot(self) -> dict[str, int]:
        return {
            "calls": self.calls,
            "attempts": self.attempts,
            "retries": self.retries,
            "successes": self.successes,
            "exhaustions": self.exhaustions,
            "rejections": self.rejections,
            "cancellations": self.cancellations,
        }


class RetryExecutor:
    """Re-invoke fallible operations with Fibonacci backoff behind a circuit breaker.

    One executor owns one ladder, one jitter sampler and one breaker. The
    breaker is shared by every call made through the executor, so
    concurrent callers see each other's failures; attempt sequences are
    otherwise independent.

    Args:
        config: Validated ``RetryConfiguration``
        name: Identifier for logs, errors and the breaker
        listener: Observer of delays and exhaustion
        scheduler: Delay facility; pass one instance to several executors
            to share its loop thread. Created (and owned) when omitted.
        rng: Random source for jitter (per-thread generators when omitted)
        clock: Monotonic clock in seconds, used by the breaker
    """

    def __init__(
        self,
        config: RetryConfiguration,
        *,
        name: str = "default",
        listener: RetryListener | None = None,
        scheduler: DelayScheduler | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.name = name
        self.ladder = DelayLadder(config.initial_delay_ms, config.max_attempts)
        self.sampler = JitterSampler(config.jitter_factor, rng)
        self.breaker = CircuitBreaker(
            name=name,
            failure_threshold=config.failure_threshold,
            open_duration=config.circuit_open_seconds,
            clock=clock,
        )
        self.listener: RetryListener = listener or NullListener()
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or DelayScheduler(thread_name=f"fibretry-{name}")
        self._stats = ExecutorStats()
        self._stats_lock = threading.Lock()

    # ── Synchronous shapes ───────────────────────────────────────────

    def call(self, operation: Callable[[], T], *, token: CancellationToken | None = None) -> T:
        """Invoke ``operation`` until it returns, retrying failures.

        Args:
            operation: Zero-argument callable
            token: Cancels the call during an inter-attempt delay

        Returns:
            The operation's result

        Raises:
            SchedulerShutdownError: The scheduler is shutting down; no attempt was made
            CircuitOpenError: The breaker is open; no attempt was made
            RetryExhaustedError: Every attempt failed
            RetryCancelledError: The token was cancelled, or shutdown's grace
                period ran out, before the next attempt
        """
        token = token or CancellationToken()
        with self.scheduler.track(token):
            ctx = self._begin()
            with LogContext(executor=self.name):
                for attempt in range(self.config.max_attempts):
                    ctx.attempt = attempt
                    self._count_attempt(ctx)
                    try:
                        result = operation()
                    except Exception as exc:
                        self._record_failure(ctx, exc)
                        if ctx.is_last_attempt:
                            break
                        if token.cancelled or self.scheduler.closed:
                            raise self._cancelled(ctx, exc) from exc
                        delay_ms = self._next_delay(ctx)
                        try:
                            self.scheduler.wait(delay_ms, token)
                        except RetryCancelledError as cancel:
                            raise self._cancelled(ctx, cancel) from cancel
                        self._delay_completed(ctx, delay_ms)
                        continue
                    self._record_success(ctx)
                    return result
                raise self._exhausted(ctx)

    def run(self, operation: Callable[[], Any], *, token: CancellationToken | None = None) -> None:
        """Run-for-effect shape of :meth:`call`; the result is discarded."""
        self.call(operation, token=token)

    # ── Asynchronous shapes ──────────────────────────────────────────

    async def call_async(self, operation: Callable[[], Awaitable[T]] | Callable[[], T]) -> T:
        """Async :meth:`call`. Cancel the awaiting task to cancel the call.

        ``operation`` may be a coroutine function or a plain callable; plain
        callables run in the loop's default executor so they never block
        the loop.

        Raises:
            SchedulerShutdownError: The scheduler is shutting down; no attempt was made
        """
        return await self._call_async(operation, admitted=False)

    async def run_async(self, operation: Callable[[], Awaitable[Any]] | Callable[[], Any]) -> None:
        """Run-for-effect shape of :meth:`call_async`."""
        await self.call_async(operation)

    def submit(self, operation: Callable[[], Awaitable[T]] | Callable[[], T]) -> concurrent.futures.Future[T]:
        """Start :meth:`call_async` on the shared scheduler loop and return at once.

        The future resolves with the result or the terminal error. Calling
        ``future.cancel()`` cancels the call at its current delay, in which
        case the future reports ``concurrent.futures.CancelledError``.

        Raises:
            SchedulerShutdownError: If the scheduler has been shut down
        """
        return self.scheduler.submit(lambda: self._call_async(operation, admitted=True))

    async def _call_async(self, operation: Callable[[], Any], *, admitted: bool) -> Any:
        with self.scheduler.track_task(admitted=admitted):
            ctx = self._begin()
            async with LogContext(executor=self.name):
                for attempt in range(self.config.max_attempts):
                    ctx.attempt = attempt
                    self._count_attempt(ctx)
                    try:
                        result = await self._invoke_async(operation)
                    except Exception as exc:
                        self._record_failure(ctx, exc)
                        if ctx.is_last_attempt:
                            break
                        if self.scheduler.closed:
                            raise self._cancelled(ctx, exc) from exc
                        delay_ms = self._next_delay(ctx)
                        try:
                            await self.scheduler.sleep(delay_ms)
                        except asyncio.CancelledError as cancel:
                            raise self._cancelled(ctx, cancel) from cancel
                        self._delay_completed(ctx, delay_ms)
                        continue
                    self._record_success(ctx)
                    return result
                raise self._exhausted(ctx)

    @staticmethod
    async def _invoke_async(operation: Callable[[], Any]) -> Any:
        if inspect.iscoroutinefunction(operation):
            return await operation()
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, operation)
        if inspect.isawaitable(result):
            result = await result
        return result

    # ── Attempt bookkeeping (shared by every shape) ──────────────────

    def _begin(self) -> AttemptContext:
        with self._stats_lock:
            self._stats.calls += 1
        try:
            self.breaker.check()
        except CircuitOpenError:
            with self._stats_lock:
                self._stats.rejections += 1
            raise
        return AttemptContext(executor=self.name, max_attempts=self.config.max_attempts)

    def _count_attempt(self, ctx: AttemptContext) -> None:
        ctx.attempts_made += 1
        with self._stats_lock:
            self._stats.attempts += 1

    def _record_success(self, ctx: AttemptContext) -> None:
        self.breaker.record_success()
        with self._stats_lock:
            self._stats.successes += 1
        logger.info(
            "retry.succeeded",
            attempt=ctx.attempt,
            attempts=ctx.attempts_made,
            elapsed_delay_ms=ctx.elapsed_delay_ms,
        )

    def _record_failure(self, ctx: AttemptContext, exc: Exception) -> None:
        ctx.last_error = exc
        tripped = self.breaker.record_failure(exc)
        logger.warning(
            "retry.attempt_failed",
            attempt=ctx.attempt,
            max_attempts=ctx.max_attempts,
            error=repr(exc),
            breaker_tripped=tripped,
        )

    def _next_delay(self, ctx: AttemptContext) -> float:
        delay_ms = self.sampler.sample(self.ladder[ctx.attempt])
        with self._stats_lock:
            self._stats.retries += 1
        logger.info("retry.scheduled", attempt=ctx.attempt, delay_ms=delay_ms)
        notify(self.listener.before_retry, ctx.attempt, delay_ms)
        return delay_ms

    def _delay_completed(self, ctx: AttemptContext, delay_ms: float) -> None:
        ctx.elapsed_delay_ms += delay_ms
        ctx.delays.append((ctx.attempt + 1, delay_ms))

    def _exhausted(self, ctx: AttemptContext) -> RetryExhaustedError:
        with self._stats_lock:
            self._stats.exhaustions += 1
        logger.error(
            "retry.exhausted",
            attempts=ctx.attempts_made,
            elapsed_delay_ms=ctx.elapsed_delay_ms,
            error=repr(ctx.last_error),
        )
        notify(self.listener.on_retry_failure, ctx.last_error)
        error = RetryExhaustedError(
            f"All {ctx.attempts_made} attempts failed: {ctx.last_error!r}",
            last_error=ctx.last_error,
            attempts=ctx.attempts_made,
            elapsed_delay_ms=ctx.elapsed_delay_ms,
            delays=ctx.delays,
        )
        return error.with_context(executor=self.name)

    def _cancelled(self, ctx: AttemptContext, exc: BaseException) -> RetryCancelledError:
        with self._stats_lock:
            self._stats.cancellations += 1
        logger.warning(
            "retry.cancelled",
            attempt=ctx.attempt,
            attempts=ctx.attempts_made,
            elapsed_delay_ms=ctx.elapsed_delay_ms,
        )
        error = RetryCancelledError(
            f"Retry cancelled after {ctx.attempts_made} attempt(s)",
            last_error=ctx.last_error,
            attempts=ctx.attempts_made,
            elapsed_delay_ms=ctx.elapsed_delay_ms,
            delays=ctx.delays,
            cause=exc,
        )
        error.with_context(executor=self.name)
        return error

    # ── Introspection & lifecycle ────────────────────────────────────

    @property
    def stats(self) -> ExecutorStats:
        return self._stats

    def delay_schedule(self) -> list[tuple[int, int]]:
        """Base delay per attempt as 1-based ``(attempt, delay_ms)`` rows."""
        return self.ladder.as_rows()

    def health(self) -> dict[str, Any]:
        with self._stats_lock:
            stats = self._stats.snapshot()
        return {
            "executor": self.name,
            "breaker_state": self.breaker.state.value,
            "consecutive_failures": self.breaker.consecutive_failures,
            "stats": stats,
            "scheduler": self.scheduler.health(),
        }

    def shutdown(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> None:
        """Shut down the scheduler if this executor created it."""
        if self._owns_scheduler:
            self.scheduler.shutdown(grace_period)

    def __enter__(self) -> RetryExecutor:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return (
            f"RetryExecutor(name={self.name!r}, max_attempts={self.config.max_attempts}, "
            f"initial_delay_ms={self.config.initial_delay_ms})"
        )
