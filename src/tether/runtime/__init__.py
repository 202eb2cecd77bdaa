"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/__init__.py.
"""

from .cache import CacheEntry, CacheStats, ResponseCache, make_cache_key
from .circuit_breaker import CircuitBreaker, CircuitSnapshot, CircuitState
from .context import RuntimeContext
from .contracts import (
    CachePolicy,
    CircuitBreakerPolicy,
    DebouncePolicy,
    QueuePolicy,
    RateLimitPolicy,
    RetryPolicy,
)
from .debounce import SUPERSEDED, Debouncer
from .fallback import FallbackEngine, is_fallback_eligible
from .orchestrator import Operation, Orchestrator, OrchestratorState
from .queue import QueuedRequest, QueueStats, RequestQueue
from .rate_limit import RateLimitStatus, SlidingWindowRateLimiter

__all__ = [
    "Orchestrator",
    "OrchestratorState",
    "Operation",
    "RuntimeContext",
    "ResponseCache",
    "CacheEntry",
    "CacheStats",
    "make_cache_key",
    "SlidingWindowRateLimiter",
    "RateLimitStatus",
    "CircuitBreaker",
    "CircuitSnapshot",
    "CircuitState",
    "RequestQueue",
    "QueuedRequest",
    "QueueStats",
    "FallbackEngine",
    "is_fallback_eligible",
    "Debouncer",
    "SUPERSEDED",
    "CachePolicy",
    "RateLimitPolicy",
    "CircuitBreakerPolicy",
    "RetryPolicy",
    "QueuePolicy",
    "DebouncePolicy",
]
