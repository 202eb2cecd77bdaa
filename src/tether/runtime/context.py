"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/context.py.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from ..metrics import MetricsSink
from ..storage import KeyValueStore
from .cache import ResponseCache
from .circuit_breaker import CircuitBreaker
from .contracts import (
    CachePolicy,
    CircuitBreakerPolicy,
    DebouncePolicy,
    QueuePolicy,
    RateLimitPolicy,
    RetryPolicy,
)
from .debounce import Debouncer
from .fallback import FallbackEngine
from .queue import RequestQueue
from .rate_limit import SlidingWindowRateLimiter


@dataclass(slots=True)
class RuntimeContext:
    """
    Handle owning the shared resilience state of one client instance.

    Build one per client (or per test/tenant) and pass it to the orchestrator.
    """

    cache: ResponseCache
    rate_limiter: SlidingWindowRateLimiter
    circuit_breaker: CircuitBreaker
    queue: RequestQueue
    fallback: FallbackEngine
    debouncer: Debouncer

    @classmethod
    def create(
        cls,
        *,
        store: KeyValueStore | None = None,
        cache_policy: CachePolicy | None = None,
        rate_limit_policy: RateLimitPolicy | None = None,
        circuit_breaker_policy: CircuitBreakerPolicy | None = None,
        queue_policy: QueuePolicy | None = None,
        retry_policy: RetryPolicy | None = None,
        debounce_policy: DebouncePolicy | None = None,
        fallback: FallbackEngine | None = None,
        metrics: MetricsSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> RuntimeContext:
        """Construct every component with its policy, sharing one store and clock."""
        return cls(
            cache=ResponseCache(cache_policy, store=store, clock=clock),
            rate_limiter=SlidingWindowRateLimiter(
                rate_limit_policy, store=store, clock=clock
            ),
            circuit_breaker=CircuitBreaker(circuit_breaker_policy, clock=clock),
            queue=RequestQueue(
                queue_policy, retry_policy, metrics=metrics, clock=clock
            ),
            fallback=fallback or FallbackEngine(),
            debouncer=Debouncer(debounce_policy),
        )
