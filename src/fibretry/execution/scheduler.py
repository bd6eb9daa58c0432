"""Shared, cancellable delay facility for retry executors.

┌──────────────────────────────────────────────────────────────────────────────┐
│  DELAY SCHEDULER ARCHITECTURE                                                 │
│                                                                               │
│   submit(coro_factory)                 wait(delay_ms, token)                  │
│      │  (non-blocking mode)               │  (call / run)                     │
│      ▼                                    ▼                                   │
│   ┌───────────────────────────────┐    caller thread parks on                 │
│   │ Daemon thread                 │    token.wait(delay) — no extra           │
│   │ "fibretry-scheduler"          │    thread per call                        │
│   │   loop.run_forever()          │                                           │
│   │   ├─ retry task A  sleep(...) │◄── one timer heap shared by every         │
│   │   ├─ retry task B  sleep(...) │    in-flight retry sequence               │
│   │   └─ ops → ThreadPoolExecutor │                                           │
│   └───────────────────────────────┘                                           │
│                                                                               │
│   shutdown(grace_period)                                                      │
│      1. stop accepting new calls and submissions                              │
│      2. in-flight calls keep retrying for up to grace_period                  │
│      3. close: cancel futures, tracked tasks and sync tokens that remain      │
│      4. stop the loop, join the thread (bounded)                              │
└──────────────────────────────────────────────────────────────────────────────┘

Example:
    >>> scheduler = DelayScheduler()
    >>> async def work():
    ...     await scheduler.sleep(10)
    ...     return "done"
    >>> scheduler.submit(work).result()
    'done'
    >>> scheduler.shutdown()
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from collections import Counter
from collections.abc import Callable, Coroutine, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, TypeVar

from fibretry.core.errors import RetryCancelledError, SchedulerShutdownError
from fibretry.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_GRACE_PERIOD = 5.0
_DRAIN_TIMEOUT = 2.0
_JOIN_TIMEOUT = 5.0


class CancellationToken:
    """Thread-safe cancellation flag for a synchronous retry call.

    Once cancelled it stays cancelled; the executor leaves it set so the
    caller can observe why its call stopped.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if not self._event.is_set():
                self._reason = reason
                self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` seconds pass. True if cancelled."""
        return self._event.wait(timeout)




class DelayScheduler:
    """Event-loop backed timer shared by every call of one or more executors.

    The loop thread is started lazily on the first ``submit``. Synchronous
    callers never touch it: they park on their own ``CancellationToken``.
    Every in-flight call is registered so shutdown can give it a grace
    period and then cancel it.
    """

    name = "asyncio"

    def __init__(self, thread_name: str = "fibretry-scheduler", max_workers: int | None = None) -> None:
        self._thread_name = thread_name
        self._max_workers = max_workers
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._workers: concurrent.futures.ThreadPoolExecutor | None = None
        self._futures: set[concurrent.futures.Future[Any]] = set()
        # Counted per registration: several calls may share one token.
        self._calls: Counter[CancellationToken] = Counter()
        self._waiters: Counter[CancellationToken] = Counter()
        self._tasks: dict[asyncio.Task[Any], asyncio.AbstractEventLoop] = {}
        self._accepting = True
        self._closed = False
        self._submitted = 0
        self._started_at: datetime | None = None

    # ── Lifecycle ────────────────────────────────────────────────────

    def _start_locked(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop

        loop = asyncio.new_event_loop()
        workers = concurrent.futures.ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=f"{self._thread_name}-op",
        )
        loop.set_default_executor(workers)

        def _run() -> None:
            asyncio.set_event_loop(loop)
            logger.info("scheduler.started", thread=self._thread_name)
            loop.run_forever()
            logger.info("scheduler.loop_stopped", thread=self._thread_name)

        thread = threading.Thread(target=_run, daemon=True, name=self._thread_name)
        thread.start()
        self._loop, self._thread, self._workers = loop, thread, workers
        self._started_at = datetime.now(UTC)
        return loop

    def submit(self, coro_factory: Callable[[], Coroutine[Any, Any, T]]) -> concurrent.futures.Future[T]:
        """Run a coroutine on the scheduler loop and return a handle to its outcome.

        Cancelling the returned future cancels the coroutine at its next
        suspension point.

        Raises:
            SchedulerShutdownError: If the scheduler has been shut down.
        """
        with self._lock:
            if not self._accepting:
                raise SchedulerShutdownError("DelayScheduler is shut down; no new work accepted")
            loop = self._start_locked()
            future = asyncio.run_coroutine_threadsafe(coro_factory(), loop)
            self._futures.add(future)
            self._submitted += 1
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: concurrent.futures.Future[Any]) -> None:
        with self._idle:
            self._futures.discard(future)
            self._idle.notify_all()

    # ── In-flight calls ──────────────────────────────────────────────

    @contextmanager
    def track(self, token: CancellationToken) -> Iterator[CancellationToken]:
        """Register a synchronous call for the duration of the block.

        Shutdown lets registered calls run for its grace period, then
        cancels their tokens.

        Raises:
            SchedulerShutdownError: If shutdown has already begun.
        """
        with self._lock:
            if not self._accepting:
                raise SchedulerShutdownError("DelayScheduler is shut down; no new calls accepted")
            self._calls[token] += 1
        try:
            yield token
        finally:
            self._release(self._calls, token)

    @contextmanager
    def track_task(self, *, admitted: bool = False) -> Iterator[None]:
        """Register the current asyncio task for the duration of the block.

        ``admitted`` marks a task that was accepted by ``submit`` before
        shutdown began and may therefore still start during the grace period.

        Raises:
            SchedulerShutdownError: If shutdown has begun and the task was
                not admitted earlier.
        """
        task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        with self._lock:
            if not self._accepting and not admitted:
                raise SchedulerShutdownError("DelayScheduler is shut down; no new calls accepted")
            if task is not None:
                self._tasks[task] = loop
        try:
            yield
        finally:
            with self._idle:
                if task is not None:
                    self._tasks.pop(task, None)
                self._idle.notify_all()

    def _release(self, registry: Counter[CancellationToken], token: CancellationToken) -> None:
        with self._idle:
            registry[token] -= 1
            if registry[token] <= 0:
                del registry[token]
            self._idle.notify_all()

    def _quiescent(self) -> bool:
        return not (self._futures or self._calls or self._waiters or self._tasks)

    # ── Delays ───────────────────────────────────────────────────────

    def wait(self, delay_ms: float, token: CancellationToken | None = None) -> None:
        """Suspend the calling thread for ``delay_ms`` unless cancelled first.

        Delays requested during a shutdown's grace period are served; once
        the grace period is over the scheduler is closed and refuses them.

        Raises:
            RetryCancelledError: If the token is cancelled (or the scheduler
                closes) before the delay elapses, or the scheduler is closed.
        """
        token = token or CancellationToken()
        with self._lock:
            if self._closed:
                raise RetryCancelledError("Delay refused: scheduler is shut down")
            self._waiters[token] += 1
        try:
            cancelled = token.wait(delay_ms / 1000.0)
        finally:
            self._release(self._waiters, token)
        if cancelled:
            raise RetryCancelledError(f"Delay cancelled: {token.reason}")

    async def sleep(self, delay_ms: float) -> None:
        """Suspend the current task for ``delay_ms``; task cancellation propagates.

        Raises:
            RetryCancelledError: If the scheduler is closed.
        """
        if self._closed:
            raise RetryCancelledError("Delay refused: scheduler is shut down")
        await asyncio.sleep(delay_ms / 1000.0)

    # ── Shutdown ─────────────────────────────────────────────────────

    def shutdown(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> None:
        """Stop accepting work, let in-flight work finish within ``grace_period``
        seconds, then cancel the rest and stop the loop thread.

        Safe to call more than once.
        """
        with self._lock:
            if not self._accepting:
                return
            self._accepting = False
            loop, thread, workers = self._loop, self._thread, self._workers
            logger.info(
                "scheduler.shutting_down",
                pending=len(self._futures),
                calls=sum(self._calls.values()) + len(self._tasks),
                waiters=sum(self._waiters.values()),
                grace_period=grace_period,
            )

        with self._idle:
            drained = self._idle.wait_for(self._quiescent, timeout=grace_period)
            self._closed = True
            futures = list(self._futures)
            tokens = set(self._calls) | set(self._waiters)
            tasks = list(self._tasks.items())

        if not drained:
            logger.warning(
                "scheduler.forced_cancel",
                futures=len(futures),
                tokens=len(tokens),
                tasks=len(tasks),
            )
        for future in futures:
            future.cancel()
        for token in tokens:
            token.cancel("scheduler shutdown")
        for task, task_loop in tasks:
            if not task_loop.is_closed():
                task_loop.call_soon_threadsafe(task.cancel)

        if loop is None:
            logger.info("scheduler.shutdown_complete", started=False)
            return

        drain = asyncio.run_coroutine_threadsafe(self._drain(), loop)
        try:
            drain.result(timeout=_DRAIN_TIMEOUT)
        except concurrent.futures.TimeoutError:
            logger.warning("scheduler.drain_timeout", timeout=_DRAIN_TIMEOUT)

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("scheduler.thread_still_alive", thread=self._thread_name)
            else:
                loop.close()
        if workers is not None:
            # Operations already running are never interrupted; queued ones are dropped.
            workers.shutdown(wait=False, cancel_futures=True)

        logger.info("scheduler.shutdown_complete", started=True)

    @staticmethod
    async def _drain() -> None:
        current = asyncio.current_task()
        tasks = [t for t in asyncio.all_tasks() if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Introspection ────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def closed(self) -> bool:
        """True once the shutdown grace period is over."""
        return self._closed

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._futures)

    def health(self) -> dict[str, Any]:
        """Return scheduler health status.

        Returns:
            dict with healthy, backend, pending, calls, waiters, submitted, started_at
        """
        with self._lock:
            return {
                "healthy": self._accepting and (self._thread is None or self._thread.is_alive()),
                "backend": self.name,
                "running": self.is_running,
                "accepting": self._accepting,
                "closed": self._closed,
                "pending": len(self._futures),
                "calls": sum(self._calls.values()) + len(self._tasks),
                "waiters": sum(self._waiters.values()),
                "submitted": self._submitted,
                "started_at": self._started_at.isoformat() if self._started_at else None,
            }

    def __enter__(self) -> DelayScheduler:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()
