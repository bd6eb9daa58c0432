"""Tests for the Fibonacci delay ladder and jitter sampler."""

import random
import threading
from unittest.mock import MagicMock

import pytest

from fibretry.core.errors import ConfigurationError
from fibretry.execution.backoff import MAX_DELAY_MS, DelayLadder, JitterSampler, fibonacci_ladder


class TestDelayLadder:
    """Tests for DelayLadder."""

    def test_documented_example(self):
        """5 attempts seeded with 100 ms."""
        assert DelayLadder(100, 5).delays == (100, 100, 200, 300, 500)

    def test_single_attempt_has_one_rung(self):
        """max_attempts=1 only has delay[0]."""
        ladder = DelayLadder(250, 1)
        assert ladder.delays == (250,)
        assert len(ladder) == 1

    @pytest.mark.parametrize("initial,attempts", [(1, 2), (1, 30), (7, 12), (1000, 30), (123456, 25)])
    def test_fibonacci_recurrence(self, initial, attempts):
        """First two rungs equal the seed, every later rung is the sum of the two before it."""
        delays = DelayLadder(initial, attempts).delays
        assert len(delays) == attempts
        assert delays[0] == delays[1] == initial
        for i in range(2, attempts):
            assert delays[i] == delays[i - 1] + delays[i - 2]

    def test_overflow_is_a_construction_error(self):
        """Summation past the 64-bit range raises instead of wrapping or clamping."""
        with pytest.raises(ConfigurationError) as exc_info:
            DelayLadder(2**62, 3)
        assert "overflow" in str(exc_info.value)

    def test_largest_non_overflowing_ladder(self):
        """A ladder whose last rung is exactly the maximum is accepted."""
        seed = MAX_DELAY_MS // 2
        delays = DelayLadder(seed, 3).delays
        assert delays[-1] == seed * 2 <= MAX_DELAY_MS

    def test_seed_above_range_rejected(self):
        with pytest.raises(ConfigurationError):
            fibonacci_ladder(MAX_DELAY_MS + 1, 1)

    @pytest.mark.parametrize("initial,attempts", [(0, 5), (-1, 5), (100, 0)])
    def test_invalid_arguments(self, initial, attempts):
        with pytest.raises(ConfigurationError):
            fibonacci_ladder(initial, attempts)

    def test_rows_and_total(self):
        """Rows are 1-based; the total excludes the rung after the final attempt."""
        ladder = DelayLadder(100, 5)
        assert ladder.as_rows() == [(1, 100), (2, 100), (3, 200), (4, 300), (5, 500)]
        assert ladder.total_ms == 700
        assert list(ladder) == [100, 100, 200, 300, 500]
        assert ladder[3] == 300

    def test_delays_are_immutable(self):
        ladder = DelayLadder(10, 4)
        assert isinstance(ladder.delays, tuple)
        with pytest.raises(AttributeError):
            ladder.extra = 1


class TestJitterSampler:
    """Tests for JitterSampler."""

    @pytest.mark.parametrize("base", [1, 3, 100, 12345])
    @pytest.mark.parametrize("jitter", [0.0, 0.1, 0.5, 0.99])
    def test_samples_stay_within_bounds(self, base, jitter):
        """Every sample lies in [max(1, d*(1-j)), d*(1+j)]."""
        sampler = JitterSampler(jitter, random.Random(1234))
        low, high = max(1.0, base * (1 - jitter)), base * (1 + jitter)
        for _ in range(300):
            delay = sampler.sample(base)
            assert low <= delay <= high

    def test_floor_of_one_millisecond(self):
        """Heavy negative jitter never drops below 1 ms."""
        rng = MagicMock()
        rng.uniform.return_value = -0.9
        sampler = JitterSampler(0.9, rng)
        assert sampler.sample(1) == 1.0

    def test_zero_jitter_consumes_no_randomness(self):
        rng = MagicMock()
        sampler = JitterSampler(0.0, rng)
        assert sampler.sample(300) == 300.0
        rng.uniform.assert_not_called()

    def test_draws_are_independent_per_call(self):
        """Each call draws fresh randomness from the configured range."""
        rng = MagicMock()
        rng.uniform.side_effect = [0.1, -0.1]
        sampler = JitterSampler(0.1, rng)
        assert sampler.sample(100) == pytest.approx(110.0)
        assert sampler.sample(100) == pytest.approx(90.0)
        rng.uniform.assert_called_with(-0.1, 0.1)

    def test_seeded_samplers_agree(self):
        a = JitterSampler(0.3, random.Random(42))
        b = JitterSampler(0.3, random.Random(42))
        assert [a.sample(100) for _ in range(5)] == [b.sample(100) for _ in range(5)]

    def test_jitter_varies(self):
        sampler = JitterSampler(0.5)
        delays = {round(sampler.sample(1000), 3) for _ in range(20)}
        assert len(delays) > 1

    def test_negative_jitter_rejected(self):
        with pytest.raises(ConfigurationError):
            JitterSampler(-0.1)

    def test_bounds(self):
        assert JitterSampler(0.1).bounds(100) == pytest.approx((90.0, 110.0))
        assert JitterSampler(0.9).bounds(1) == (1.0, pytest.approx(1.9))

    def test_concurrent_sampling(self):
        """Default per-thread generators are safe to use from many threads."""
        sampler = JitterSampler(0.2)
        errors = []
        results = []

        def worker():
            try:
                results.extend(sampler.sample(100) for _ in range(200))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 1600
        assert all(80.0 <= d <= 120.0 for d in results)
