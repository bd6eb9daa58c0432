"""Tests for the circuit breaker state machine."""

import threading

import pytest

from fibretry.core.errors import CircuitOpenError
from fibretry.execution.circuit_breaker import CircuitBreaker, CircuitState


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(name="test", failure_threshold=3, open_duration=30.0, clock=clock)


class TestCircuitBreakerClosed:
    """Tests for the CLOSED state."""

    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.allow_request() is True

    def test_failures_below_threshold_stay_closed(self, breaker):
        assert breaker.record_failure() is False
        assert breaker.record_failure() is False
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 2

    def test_success_resets_count(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        assert breaker.consecutive_failures == 0
        assert breaker.record_failure() is False

    def test_trips_at_threshold(self, breaker, clock):
        """Threshold-th consecutive failure opens and resets the counter."""
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.record_failure(ConnectionError("down")) is True
        assert breaker.state == CircuitState.OPEN
        assert breaker.is_open
        assert breaker.consecutive_failures == 0
        assert breaker.opened_at == clock()
        assert breaker.stats.trips == 1

    def test_disabled_breaker_never_opens(self, clock):
        breaker = CircuitBreaker(failure_threshold=None, clock=clock)
        for _ in range(1000):
            assert breaker.record_failure() is False
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request() is True


class TestCircuitBreakerOpen:
    """Tests for the OPEN state and the lazy move to HALF_OPEN."""

    @pytest.fixture
    def tripped(self, breaker):
        for _ in range(3):
            breaker.record_failure()
        return breaker

    def test_rejects_without_changing_state(self, tripped):
        assert tripped.allow_request() is False
        assert tripped.state == CircuitState.OPEN
        assert tripped.consecutive_failures == 0
        assert tripped.stats.rejected_requests == 1

    def test_still_open_at_exact_duration(self, tripped, clock):
        """The open window must be strictly exceeded."""
        clock.advance(30.0)
        assert tripped.allow_request() is False

    def test_half_open_after_duration(self, tripped, clock):
        clock.advance(30.001)
        assert tripped.allow_request() is True
        assert tripped.state == CircuitState.HALF_OPEN

    def test_state_does_not_move_without_a_request(self, tripped, clock):
        clock.advance(120.0)
        assert tripped.state == CircuitState.OPEN

    def test_check_raises_with_retry_after(self, tripped, clock):
        clock.advance(10.0)
        with pytest.raises(CircuitOpenError) as exc_info:
            tripped.check()
        error = exc_info.value
        assert error.retryable is True
        assert error.retry_after_ms == pytest.approx(20_000.0)
        assert error.context.executor == "test"

    def test_check_passes_when_closed(self, breaker):
        breaker.check()

    def test_zero_duration_opens_for_an_instant(self, clock):
        breaker = CircuitBreaker(failure_threshold=1, open_duration=0.0, clock=clock)
        breaker.record_failure()
        assert breaker.allow_request() is False
        clock.advance(0.001)
        assert breaker.allow_request() is True


class TestCircuitBreakerHalfOpen:
    """Tests for the HALF_OPEN state."""

    @pytest.fixture
    def half_open(self, breaker, clock):
        breaker.force_open()
        clock.advance(31.0)
        assert breaker.allow_request() is True
        return breaker

    def test_success_closes(self, half_open):
        half_open.record_success()
        assert half_open.state == CircuitState.CLOSED

    def test_failures_below_threshold_keep_probing(self, half_open):
        """HALF_OPEN counts failures exactly like CLOSED."""
        assert half_open.record_failure() is False
        assert half_open.state == CircuitState.HALF_OPEN
        assert half_open.allow_request() is True

    def test_reopens_at_threshold(self, half_open, clock):
        half_open.record_failure()
        half_open.record_failure()
        assert half_open.record_failure() is True
        assert half_open.state == CircuitState.OPEN
        assert half_open.opened_at == clock()


class TestCircuitBreakerControl:
    """Tests for manual control, stats and concurrency."""

    def test_reset(self, breaker):
        breaker.force_open()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.opened_at is None
        assert breaker.allow_request() is True

    def test_force_open(self, breaker):
        breaker.record_failure()
        breaker.force_open()
        assert breaker.state == CircuitState.OPEN
        assert breaker.consecutive_failures == 0

    def test_stats(self, breaker):
        breaker.record_success()
        breaker.record_failure()
        snapshot = breaker.stats.snapshot()
        assert snapshot["successful_requests"] == 1
        assert snapshot["failed_requests"] == 1
        assert snapshot["failure_rate"] == 50.0

    def test_concurrent_failures_trip_exactly_once(self, clock):
        breaker = CircuitBreaker(failure_threshold=1000, open_duration=30.0, clock=clock)

        def worker():
            for _ in range(100):
                breaker.record_failure()

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert breaker.stats.trips == 1
        assert breaker.stats.failed_requests == 1000
        assert breaker.consecutive_failures == 0
        assert breaker.state == CircuitState.OPEN

    def test_concurrent_requests_all_rejected_while_open(self, breaker):
        breaker.force_open()
        results = []
        lock = threading.Lock()

        def worker():
            allowed = breaker.allow_request()
            with lock:
                results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [False] * 50
