"""Fibonacci delay ladder and jitter.

Both pieces are pure: the ladder is computed once per executor and never
changes, and the sampler keeps no memory between calls.

BACKOFF TIMING — FIBONACCI (initial=100 ms, 5 attempts)
────────────────────────────────────────────────────────
    Attempt  Base delay  Cumulative
    ──────── ─────────── ──────────
    0        100 ms      100 ms
    1        100 ms      200 ms
    2        200 ms      400 ms
    3        300 ms      700 ms
    4        500 ms      1200 ms

    The delay at index ``i`` is waited after attempt ``i`` fails; the last
    rung is only reachable through ``delay_schedule()`` since no retry
    follows the final attempt.

Example:
    >>> DelayLadder(100, 5).delays
    (100, 100, 200, 300, 500)
    >>> JitterSampler(0.0).sample(100)
    100.0
"""

from __future__ import annotations

import random
import threading
from collections.abc import Iterator

from fibretry.core.errors import ConfigurationError

# Delays must stay representable as signed 64-bit milliseconds.
MAX_DELAY_MS = 2**63 - 1


def fibonacci_ladder(initial_delay_ms: int, max_attempts: int) -> tuple[int, ...]:
    """Return ``max_attempts`` Fibonacci delays seeded twice with ``initial_delay_ms``.

    Raises:
        ConfigurationError: If a rung exceeds ``MAX_DELAY_MS``, or the
            arguments are out of range.
    """
    if max_attempts < 1:
        raise ConfigurationError("max_attempts must be >= 1", field_name="max_attempts")
    if initial_delay_ms < 1:
        raise ConfigurationError("initial_delay_ms must be >= 1", field_name="initial_delay_ms")
    if initial_delay_ms > MAX_DELAY_MS:
        raise ConfigurationError(
            f"initial_delay_ms {initial_delay_ms} overflows the delay range",
            field_name="initial_delay_ms",
        )

    delays = [initial_delay_ms] * min(max_attempts, 2)
    for i in range(2, max_attempts):
        nxt = delays[i - 1] + delays[i - 2]
        if nxt > MAX_DELAY_MS:
            raise ConfigurationError(
                f"Delay ladder overflows at attempt {i} "
                f"(initial_delay_ms={initial_delay_ms}, max_attempts={max_attempts})",
                field_name="initial_delay_ms",
            )
        delays.append(nxt)
    return tuple(delays)


class DelayLadder:
    """Precomputed base delay per attempt index. Read-only, no locking needed."""

    __slots__ = ("_delays",)

    def __init__(self, initial_delay_ms: int, max_attempts: int) -> None:
        self._delays = fibonacci_ladder(initial_delay_ms, max_attempts)

    @property
    def delays(self) -> tuple[int, ...]:
        return self._delays

    @property
    def total_ms(self) -> int:
        """Sum of the delays actually waited when every attempt fails."""
        return sum(self._delays[:-1])

    def as_rows(self) -> list[tuple[int, int]]:
        """``(attempt, delay_ms)`` pairs with 1-based attempt numbers, for export."""
        return [(i + 1, d) for i, d in enumerate(self._delays)]

    def __getitem__(self, index: int) -> int:
        return self._delays[index]

    def __len__(self) -> int:
        return len(self._delays)

    def __iter__(self) -> Iterator[int]:
        return iter(self._delays)

    def __repr__(self) -> str:
        return f"DelayLadder({list(self._delays)!r})"


_thread_rng = threading.local()


def _default_rng() -> random.Random:
    rng = getattr(_thread_rng, "rng", None)
    if rng is None:
        rng = _thread_rng.rng = random.Random()
    return rng


class JitterSampler:
    """Perturb a base delay by a uniform fraction in ``[-j, j]``, floored at 1 ms.

    Without an injected ``rng`` every thread draws from its own generator,
    so executors running in parallel never contend on shared random state.
    """

    def __init__(self, jitter_factor: float, rng: random.Random | None = None) -> None:
        if jitter_factor < 0:
            raise ConfigurationError(
                f"jitter_factor must be >= 0, got {jitter_factor}", field_name="jitter_factor"
            )
        self.jitter_factor = jitter_factor
        self._rng = rng

    def bounds(self, base_delay_ms: float) -> tuple[float, float]:
        """Inclusive range a sample of ``base_delay_ms`` can fall in."""
        low = max(1.0, base_delay_ms * (1 - self.jitter_factor))
        high = max(1.0, base_delay_ms * (1 + self.jitter_factor))
        return low, high

    def sample(self, base_delay_ms: float) -> float:
        if self.jitter_factor == 0:
            return max(1.0, float(base_delay_ms))
        rng = self._rng or _default_rng()
        u = rng.uniform(-self.jitter_factor, self.jitter_factor)
        return max(1.0, base_delay_ms * (1 + u))
