from __future__ import annotations

from tether.runtime.circuit_breaker import CircuitBreaker, CircuitState
from tether.runtime.contracts import CircuitBreakerPolicy


class _Clock:
    def __init__(self, now: float = 500.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _open_breaker(breaker: CircuitBreaker, failures: int = 5) -> None:
    for _ in range(failures):
        assert breaker.can_attempt() is True
        breaker.record_failure()


def test_opens_after_threshold_consecutive_failures():
    breaker = CircuitBreaker(clock=_Clock())
    for _ in range(4):
        breaker.record_failure()
    assert breaker.state is CircuitState.CLOSED

    breaker.record_failure()
    assert breaker.state is CircuitState.OPEN
    assert breaker.can_attempt() is False


def test_success_resets_failure_count():
    breaker = CircuitBreaker(clock=_Clock())
    for _ in range(4):
        breaker.record_failure()
    breaker.record_success()
    assert breaker.consecutive_failures == 0
    for _ in range(4):
        breaker.record_failure()
    assert breaker.state is CircuitState.CLOSED


def test_half_open_after_cooldown_grants_single_probe():
    clock = _Clock()
    breaker = CircuitBreaker(CircuitBreakerPolicy(cooldown_s=300.0), clock=clock)
    _open_breaker(breaker)

    clock.advance(299)
    assert breaker.can_attempt() is False
    assert breaker.time_until_recovery() == 1.0

    clock.advance(1)
    assert breaker.state is CircuitState.HALF_OPEN
    assert breaker.can_attempt() is True
    assert breaker.can_attempt() is False
    assert breaker.snapshot().probe_in_flight is True


def test_probe_success_closes_circuit():
    clock = _Clock()
    breaker = CircuitBreaker(clock=clock)
    _open_breaker(breaker)
    clock.advance(300)

    assert breaker.can_attempt() is True
    breaker.record_success()
    assert breaker.state is CircuitState.CLOSED
    assert breaker.can_attempt() is True


def test_probe_failure_reopens_with_fresh_cooldown():
    clock = _Clock()
    breaker = CircuitBreaker(clock=clock)
    _open_breaker(breaker)
    clock.advance(300)

    assert breaker.can_attempt() is True
    breaker.record_failure()
    assert breaker.state is CircuitState.OPEN
    assert breaker.time_until_recovery() == 300.0


def test_released_probe_can_be_granted_again():
    clock = _Clock()
    breaker = CircuitBreaker(clock=clock)
    _open_breaker(breaker)
    clock.advance(300)

    assert breaker.can_attempt() is True
    breaker.release_probe()
    assert breaker.can_attempt() is True


def test_status_message_reports_minutes_until_recovery():
    clock = _Clock()
    breaker = CircuitBreaker(clock=clock)
    assert breaker.status_message() == "Remote service is operational"
    _open_breaker(breaker)
    clock.advance(100)
    assert "Retrying in 4 minutes" in breaker.status_message()
    clock.advance(200)
    assert "recovering" in breaker.status_message()


def test_manual_reset_closes_circuit():
    breaker = CircuitBreaker(clock=_Clock())
    _open_breaker(breaker)
    breaker.reset()
    assert breaker.state is CircuitState.CLOSED
    assert breaker.consecutive_failures == 0
