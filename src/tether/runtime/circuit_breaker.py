"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/circuit_breaker.py.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .contracts import CircuitBreakerPolicy

logger = logging.getLogger("tether.circuit")


class CircuitState(str, Enum):
    """Breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class CircuitSnapshot:
    """Data type for circuit state."""

    state: CircuitState
    consecutive_failures: int
    opened_at: float | None
    probe_in_flight: bool


class CircuitBreaker:
    """
    Consecutive-failure breaker with a single half-open probe.

    States:
        closed: normal operation, calls allowed
        open: calls refused until ``cooldown_s`` has elapsed since opening
        half_open: exactly one probe call allowed

    Pattern:
        closed -> (failures >= threshold) -> open
        open -> (cooldown elapsed) -> half_open
        half_open -> (probe success) -> closed
        half_open -> (probe failure) -> open, cooldown restarted

    State lives for the process lifetime only.
    """

    def __init__(
        self,
        policy: CircuitBreakerPolicy | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy or CircuitBreakerPolicy()
        if self._policy.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: float | None = None
        self._probe_in_flight = False

    @property
    def policy(self) -> CircuitBreakerPolicy:
        return self._policy

    @property
    def state(self) -> CircuitState:
        self._update_state()
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def snapshot(self) -> CircuitSnapshot:
        self._update_state()
        return CircuitSnapshot(
            state=self._state,
            consecutive_failures=self._failures,
            opened_at=self._opened_at,
            probe_in_flight=self._probe_in_flight,
        )

    def can_attempt(self) -> bool:
        """
        Whether a remote call may proceed.

        In half-open state the first caller receives the probe grant; every
        other caller is refused until that probe resolves.
        """
        self._update_state()
        if self._state is CircuitState.CLOSED:
            return True
        if self._state is CircuitState.OPEN:
            return False
        if self._probe_in_flight:
            return False
        self._probe_in_flight = True
        logger.info("Circuit half-open, granting probe call")
        return True

    def release_probe(self) -> None:
        """Return an unused probe grant when the call never reached the remote."""
        if self._state is CircuitState.HALF_OPEN and self._probe_in_flight:
            self._probe_in_flight = False

    def record_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("Remote service recovered, closing circuit")
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._probe_in_flight = False

    def record_failure(self) -> None:
        self._update_state()
        self._failures += 1
        logger.debug(
            "Failure recorded (%d/%d)", self._failures, self._policy.failure_threshold
        )

        if self._state is CircuitState.HALF_OPEN:
            logger.warning("Probe failed, reopening circuit")
            self._open()
        elif (
            self._state is CircuitState.CLOSED
            and self._failures >= self._policy.failure_threshold
        ):
            logger.warning(
                "Failure threshold reached (%d), opening circuit",
                self._policy.failure_threshold,
            )
            self._open()

    def time_until_recovery(self) -> float:
        """Seconds until the open circuit admits a probe; 0 when not open."""
        self._update_state()
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = self._clock() - self._opened_at
        return max(0.0, self._policy.cooldown_s - elapsed)

    def status_message(self) -> str:
        state = self.state
        if state is CircuitState.CLOSED:
            return "Remote service is operational"
        if state is CircuitState.HALF_OPEN:
            return "Remote service is recovering, testing connection..."
        minutes = math.ceil(self.time_until_recovery() / 60)
        plural = "" if minutes == 1 else "s"
        return f"Remote service temporarily unavailable. Retrying in {minutes} minute{plural}"

    def reset(self) -> None:
        logger.info("Circuit manually reset")
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._probe_in_flight = False

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._probe_in_flight = False

    def _update_state(self) -> None:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return
        if self._clock() - self._opened_at >= self._policy.cooldown_s:
            logger.info("Cooldown elapsed, circuit half-open")
            self._state = CircuitState.HALF_OPEN
            self._probe_in_flight = False
